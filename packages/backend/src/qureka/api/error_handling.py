"""Exception handlers — domain errors to JSON responses.

Learn: Routes and services raise QurekaError subclasses; this module is
the one place that turns them into HTTP. Every error body has a
"detail" key (same shape as FastAPI's own HTTPException responses).
"""

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from qureka.auth.cookies import CookiePlan, apply_cookie_plan
from qureka.errors import QurekaError

logger = structlog.get_logger()


def error_response(
    exc: QurekaError, cookies: Optional[CookiePlan] = None
) -> JSONResponse:
    response = JSONResponse(status_code=exc.status_code, content=exc.to_body())
    if cookies is not None:
        apply_cookie_plan(response, cookies)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(QurekaError)
    async def handle_qureka_error(request: Request, exc: QurekaError):
        log_fn = logger.error if exc.status_code >= 500 else logger.debug
        log_fn(
            "api.error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error=type(exc).__name__,
            detail=exc.detail,
        )
        return error_response(exc)
