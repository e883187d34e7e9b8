"""
Error taxonomy for the store and the handlers that turn it into HTTP responses.

Every error body is ``{"message": "..."}``.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from logger import get_logger

_logger = get_logger(__name__)


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(StoreError):
    """Malformed or missing input, rejected before touching storage."""

    status_code = 400


class BusinessRuleViolation(StoreError):
    status_code = 400


class EmptyCart(BusinessRuleViolation):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InsufficientStock(BusinessRuleViolation):
    def __init__(self, product_name=None):
        if product_name:
            message = f"Insufficient stock for {product_name}"
        else:
            message = "Insufficient stock"
        super().__init__(message)
        self.product_name = product_name


class AuthFailure(StoreError):
    status_code = 401


class AuthorizationFailure(StoreError):
    status_code = 403


class NotFound(StoreError):
    status_code = 404


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    field = ".".join(loc)
    msg = first.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        if exc.status_code >= 500:
            _logger.error(f"{request.method} {request.url.path}: {exc.message}")
        else:
            _logger.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"message": _validation_message(exc)})
