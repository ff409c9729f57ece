"""Exception handlers that turn domain errors into HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .core.exceptions import DomainException, RepositoryException

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        http_exc = exc.to_http_exception()
        if http_exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=http_exc.status_code,
            content=jsonable_encoder({"detail": http_exc.detail}),
            headers=getattr(http_exc, "headers", None),
        )

    @app.exception_handler(RepositoryException)
    async def repository_exception_handler(request: Request, exc: RepositoryException) -> JSONResponse:
        logger.error("Data access error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={
                "detail": {
                    "message": "Temporarily unavailable, please retry",
                    "code": "DATA_ACCESS_ERROR",
                    "details": {},
                }
            },
        )
