"""
Shared fixtures for the assessment engine tests.
"""

import random

import pytest

from backend.assessments.factory import create_memory_engine
from backend.tests.helpers import FrozenClock


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def engine(clock):
    return create_memory_engine(clock=clock, rng_factory=lambda: random.Random(7))
