# coursepay/core/response.py
from typing import Any, Dict, Iterable, Literal, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from coursepay.core.exceptions import status_for_error_code


class ErrorDetail(BaseModel):
    """One failed field of a request body"""
    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class ResponseModel(BaseModel):
    status: Literal["success", "error"]
    msg: str
    data: Optional[Any] = None


class ErrorResponseModel(ResponseModel):
    """Error envelope carrying a machine-readable code for clients"""
    status: Literal["error"] = "error"
    error_code: Optional[str] = None
    details: Optional[list[ErrorDetail]] = None


def _json(model: BaseModel, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(exclude_none=True))


def success_response(msg: str = "OK", data: Any = None, status_code: int = 200) -> JSONResponse:
    return _json(ResponseModel(status="success", msg=msg, data=jsonable_encoder(data)), status_code)


def error_response(
    msg: str,
    data: Any = None,
    status_code: int = 400,
    error_code: Optional[str] = None,
    details: Optional[list[ErrorDetail]] = None,
) -> JSONResponse:
    """Error envelope; ``error_code`` and ``details`` are omitted when unset."""
    model = ErrorResponseModel(
        msg=msg,
        error_code=error_code,
        details=details,
        data=jsonable_encoder(data),
    )
    return _json(model, status_code)


def validation_error_response(errors: Iterable[Dict[str, Any]], status_code: int = 422) -> JSONResponse:
    """Turn FastAPI/pydantic error dicts into ``details`` entries keyed by field path."""
    details = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        details.append(
            ErrorDetail(
                field=".".join(loc) or None,
                message=err.get("msg", "Validation error"),
                code="VALIDATION_ERROR",
            )
        )
    return error_response(
        "Invalid request parameters",
        status_code=status_code,
        error_code="VALIDATION_ERROR",
        details=details,
    )


def billing_error_response(msg: Optional[str], error_code: Optional[str] = None, data: Any = None) -> JSONResponse:
    """Error envelope for a failed PaymentResult / SubscriptionResult."""
    return error_response(
        msg or "Request failed",
        data=data,
        status_code=status_for_error_code(error_code),
        error_code=error_code,
    )
