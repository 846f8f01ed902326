"""Response envelope shared by every route: {"status", "message", "data"}."""
import uuid
import decimal
from datetime import datetime, date

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rescue_hub.shared.errors import AppError


def serialize_data(obj):
    """Convert asyncpg values and models into JSON-ready types"""
    if isinstance(obj, BaseModel):
        return serialize_data(obj.model_dump(by_alias=True))
    if isinstance(obj, dict):
        return {key: serialize_data(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize_data(item) for item in obj]
    if isinstance(obj, uuid.UUID):
        return str(obj)
    if isinstance(obj, decimal.Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj


def _envelope(outcome: str, message: str, data, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": outcome, "message": message, "data": data},
    )


def success_response(data=None, message="Success", status_code=200):
    return _envelope("success", message, serialize_data(data), status_code)


def error_response(message, status_code=400):
    return _envelope("error", message, None, status_code)


def app_error_response(exc: AppError) -> JSONResponse:
    """Render a domain error with the HTTP status it carries"""
    return error_response(exc.message, exc.status_code)
