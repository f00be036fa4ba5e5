"""
Domain packages.
"""
