"""
Typed errors raised by the CRM services.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with, so route handlers never inspect message strings:

    CrmError
    +-- InvalidAmount        non-positive payment, negative quantity/rate, ...
    +-- NotFound             referenced entity missing
    +-- PreconditionFailed   e.g. confirming before both sides acknowledged
    +-- InvariantViolation   computed paid/remaining would be inconsistent
"""
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class CrmError(Exception):
    code: str = "crm_error"
    status_code: int = 400

    def __init__(self, message: str, **data: Any):
        super().__init__(message)
        self.message = message
        self.data = data


class InvalidAmount(CrmError):
    code = "invalid_amount"
    status_code = 422

    def __init__(self, field: str, value: Any, message: Optional[str] = None):
        super().__init__(message or f"{field} must be a positive number (got {value!r})", field=field, value=value)
        self.field = field
        self.value = value


class NotFound(CrmError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found", entity=entity, entity_id=str(entity_id))
        self.entity = entity
        self.entity_id = entity_id


class PreconditionFailed(CrmError):
    code = "precondition_failed"
    status_code = 409


class InvariantViolation(CrmError):
    code = "invariant_violation"
    status_code = 500


async def _crm_error_handler(request: Request, exc: CrmError) -> JSONResponse:
    log = structlog.get_logger()
    if isinstance(exc, InvariantViolation):
        log.error("invariant_violation", path=request.url.path, error=exc.message, **exc.data)
    else:
        log.info("request_rejected", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CrmError, _crm_error_handler)
