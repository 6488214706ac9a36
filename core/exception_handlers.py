import logging

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import DataGapError, InvalidRegistration, ProviderUnavailable, StorageError
from .response import error as resp_error, error_from, http_error_code

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code,
                            content=resp_error(code=http_error_code(exc.status_code), message=str(exc.detail)))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        message = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ) or "Invalid request"
        return JSONResponse(status_code=422, content=resp_error(code=http_error_code(422), message=message))

    @app.exception_handler(InvalidRegistration)
    async def invalid_registration_handler(request: Request, exc: InvalidRegistration):
        logger.info("Rejected registration on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content=error_from(exc))

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content=error_from(exc, "Subscription store unavailable"))

    @app.exception_handler(ProviderUnavailable)
    @app.exception_handler(DataGapError)
    async def provider_error_handler(request: Request, exc):
        logger.error("Weather provider error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content=error_from(exc))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content=resp_error(code="internal_error", message="Internal server error"))
