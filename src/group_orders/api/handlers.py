"""Map domain exceptions to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers as register_protean_handlers

from group_orders.errors import (
    ConcurrentModificationError,
    DomainInvariantError,
    PaymentDeclinedError,
    PaymentNotRecordedError,
)


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:  # noqa: ARG001
    body = {"error": "validation_error", "messages": exc.messages}
    if isinstance(exc, DomainInvariantError):
        body["error"] = type(exc).__name__
        body["details"] = exc.details
    return JSONResponse(status_code=400, content=body)


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:  # noqa: ARG001
    detail = exc.args[0] if exc.args else str(exc)
    messages = detail if isinstance(detail, dict) else {"entity": [str(detail)]}
    return JSONResponse(status_code=404, content={"error": "not_found", "messages": messages})


async def _conflict(
    request: Request,  # noqa: ARG001
    exc: ConcurrentModificationError | PaymentNotRecordedError,
) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": type(exc).__name__, "message": exc.message, "details": exc.details},
    )


async def _payment_declined(request: Request, exc: PaymentDeclinedError) -> JSONResponse:  # noqa: ARG001
    return JSONResponse(
        status_code=402,
        content={"error": type(exc).__name__, "message": exc.message, "details": exc.details},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install protean's handlers, then override the ones whose bodies carry group order details."""
    register_protean_handlers(app)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(ConcurrentModificationError, _conflict)
    app.add_exception_handler(PaymentNotRecordedError, _conflict)
    app.add_exception_handler(PaymentDeclinedError, _payment_declined)
