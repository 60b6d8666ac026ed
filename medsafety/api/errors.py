"""
Mapping of domain errors to HTTP responses
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from medsafety.services.exceptions import (
    MedicationSafetyError, NotFoundError, InvalidStateError, RejectedError,
    NoRefillsError, PatientMismatchError, ConcurrentUpdateError
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    NotFoundError: 404,
    InvalidStateError: 409,
    NoRefillsError: 409,
    ConcurrentUpdateError: 409,
    PatientMismatchError: 400,
    RejectedError: 422,
}


def status_code_for(exc: MedicationSafetyError) -> int:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


async def medication_safety_error_handler(request: Request, exc: MedicationSafetyError) -> JSONResponse:
    status_code = status_code_for(exc)
    content = {"detail": exc.message, "error": type(exc).__name__}

    if isinstance(exc, RejectedError):
        content["alerts"] = exc.alert_summaries()
    if isinstance(exc, InvalidStateError) and exc.current_state:
        content["current_state"] = exc.current_state

    logger.info(f"{request.method} {request.url.path} -> {status_code} {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MedicationSafetyError, medication_safety_error_handler)
