"""
Error taxonomy for the ranking core and its HTTP mapping.

  NotFound      404  account / picture missing or tombstoned
  Conflict      409  a concurrent vote invalidated an optimistic write
  InvalidInput  400  unknown polarity, bad page size, bad listing mode
  Unavailable   503  storage timeout or lost connection

The core raises these; routers never translate them by hand.
`install_error_handlers` renders them as JSON for the API.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PicfeedError(Exception):
    status_code = 500
    error = "internal_error"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail or self.error


class NotFound(PicfeedError):
    status_code = 404
    error = "not_found"


class Conflict(PicfeedError):
    status_code = 409
    error = "conflict"


class InvalidInput(PicfeedError):
    status_code = 400
    error = "invalid_input"


class Unavailable(PicfeedError):
    status_code = 503
    error = "unavailable"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PicfeedError)
    async def picfeed_error_handler(request: Request, exc: PicfeedError):
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error": exc.error},
        )
