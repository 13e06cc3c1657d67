"""
Structured Validation Error Utilities

Request bodies are validated by hand so malformed input answers 400 with a
structured detail instead of FastAPI's default 422.

Error Response Format:
{
    "error": "validation_error" | "invalid_json",
    "parameter": "currentStatementId",
    "message": "Field required"
}
"""

import json
from typing import Any, Optional, Type, TypeVar

from fastapi import HTTPException, Request, status
from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)


class ValidationErrorResponse:
    """Structured validation error response builder."""

    @staticmethod
    def invalid_json(message: str = "Request body is not valid JSON") -> dict:
        return {
            "error": "invalid_json",
            "parameter": None,
            "message": message
        }

    @staticmethod
    def validation_error(message: str, parameter: Optional[str] = None, details: Optional[Any] = None) -> dict:
        """
        Create a general validation error response.

        Args:
            message: Description of the validation error
            parameter: Offending field, when there is a single one
            details: Additional error details
        """
        response = {
            "error": "validation_error",
            "parameter": parameter,
            "message": message
        }
        if details:
            response["details"] = details
        return response

    @staticmethod
    def from_pydantic(error: ValidationError) -> dict:
        """Build a response from a pydantic ValidationError (first error leads)."""
        errors = error.errors(include_url=False, include_input=False)
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        return ValidationErrorResponse.validation_error(
            message=first.get("msg", "Invalid request body"),
            parameter=location or None,
            details=[
                {"loc": ".".join(str(p) for p in e.get("loc", ())), "msg": e.get("msg")}
                for e in errors
            ]
        )


def parse_body(raw: bytes, model: Type[M]) -> M:
    """
    Parse and validate a JSON body.

    Raises:
        HTTPException: 400 on invalid JSON or schema violation
    """
    try:
        data = json.loads(raw or b"null")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ValidationErrorResponse.invalid_json()
        )

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ValidationErrorResponse.from_pydantic(e)
        )


async def parse_request_body(request: Request, model: Type[M]) -> M:
    """parse_body over a FastAPI request."""
    return parse_body(await request.body(), model)
