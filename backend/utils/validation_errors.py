"""
Structured Validation Error Utilities

Standard 4xx bodies for request data the engine cannot use, so the UI can
tell a bad entry or bad rule override apart from a connectivity issue.

Error Response Format:
{
    "error": "invalid_parameter" | "validation_error",
    "parameter": "entries[3]",
    "message": "Invalid monetary amount: 'abc'"
}
"""

from fastapi import HTTPException, status
from typing import Optional, Any


class ValidationErrorResponse:
    """Structured validation error response builder."""

    @staticmethod
    def invalid_parameter(parameter: str, message: str, value: Optional[Any] = None) -> dict:
        """
        Create an invalid parameter error response.

        Args:
            parameter: Name or path of the invalid parameter (e.g. "rules", "entries[0]")
            message: Description of the validation error
            value: The invalid value (optional, for debugging)
        """
        response = {
            "error": "invalid_parameter",
            "parameter": parameter,
            "message": message
        }
        if value is not None:
            response["received_value"] = str(value)[:100]  # Truncate for safety
        return response

    @staticmethod
    def validation_error(message: str, details: Optional[dict] = None) -> dict:
        """Create a general validation error response."""
        response = {
            "error": "validation_error",
            "parameter": None,
            "message": message
        }
        if details:
            response["details"] = details
        return response


def raise_invalid_parameter(
    parameter: str,
    message: str,
    value: Optional[Any] = None,
    status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
):
    """
    Raise HTTPException with structured invalid parameter error.

    Raises:
        HTTPException with 422 status (or status_code) and structured error body
    """
    raise HTTPException(
        status_code=status_code,
        detail=ValidationErrorResponse.invalid_parameter(parameter, message, value)
    )


def raise_validation_error(message: str, details: Optional[dict] = None):
    """
    Raise HTTPException with structured validation error.

    Raises:
        HTTPException with 422 status and structured error body
    """
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=ValidationErrorResponse.validation_error(message, details)
    )
