"""
Common schema types used across the API.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from src.kernel.errors import InvalidArgument

M = TypeVar("M", bound=BaseModel)


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: Optional[str] = None
    field: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes from clients as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def describe_validation_error(exc: Any) -> tuple[str, Optional[str]]:
    """First error of a pydantic or FastAPI validation error as (message, dotted field path)."""
    errors = exc.errors()
    if not errors:
        return "Invalid request", None
    first = errors[0]
    field = ".".join(str(loc) for loc in first.get("loc", ()) if loc != "body") or None
    message = first.get("msg", "Invalid value")
    if field:
        message = f"{field}: {message}"
    return message, field


def parse_request(model: Type[M], data: Dict[str, Any]) -> M:
    """
    Validate a raw payload against ``model``.

    Raises:
        InvalidArgument: with a field-level message for the first error
    """
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        message, field = describe_validation_error(exc)
        raise InvalidArgument(message, field=field) from exc
