"""
Central API router and utilities for the assessment engine.

This module provides:
- A central router that the engine's module routers are registered on
- The standard response envelope
- The validation and engine error handlers
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Dict, Any, Optional

from backend.common.error_handling import AssessmentEngineError, RateLimitedError, error_response, log_error
from backend.common.logger import app_logger

logger = app_logger.getChild("api")

# Create main API router
main_router = APIRouter()

# Dictionary to track registered modules
registered_modules: Dict[str, APIRouter] = {}


def register_module(name: str, router: APIRouter, prefix: str) -> None:
    """
    Register a module router with the main API router.

    Args:
        name: Name of the module, used as the OpenAPI tag
        router: FastAPI router for the module
        prefix: Path prefix for the module's routes
    """
    if name in registered_modules:
        logger.warning(f"Module '{name}' already registered, overwriting")

    main_router.include_router(router, prefix=prefix, tags=[name])
    registered_modules[name] = router
    logger.info(f"Registered module: {name} with {len(router.routes)} routes")


# Common validation error handler
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle validation errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": list(error.get("loc", [])),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse.error("Validation error", details=error_details, code="VALIDATION_ERROR")
    )


async def engine_exception_handler(request: Request, exc: AssessmentEngineError) -> JSONResponse:
    """Map an engine error to its HTTP status and the error envelope."""
    logger.debug(f"{request.method} {request.url.path} failed with {exc.code.value}")
    log_error(exc, logger)
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
        headers = {"Retry-After": str(int(exc.retry_after))}
    return JSONResponse(status_code=exc.http_status, content=error_response(exc), headers=headers)


# Standard API response model
class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        """
        Create a success response.

        Args:
            data: Response data
            message: Success message

        Returns:
            Response dictionary
        """
        return {
            "status": "success",
            "message": message,
            "data": data
        }

    @staticmethod
    def error(message: str, details: Optional[Any] = None,
              code: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an error response.

        Args:
            message: Error message
            details: Optional error details
            code: Optional error code

        Returns:
            Response dictionary
        """
        response = {
            "status": "error",
            "message": message
        }

        if details:
            response["details"] = details

        if code:
            response["code"] = code

        return response
