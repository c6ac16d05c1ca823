from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deskgate import __version__
from deskgate.api.routes import build_contract_router
from deskgate.api.runtime import Runtime, create_runtime
from deskgate.core.exceptions import APIError, ExecutionFailure
from deskgate.core.models import ErrorResponse

logger = logging.getLogger(__name__)


def create_app(runtime: Runtime | None = None) -> FastAPI:
    runtime = runtime or create_runtime()
    app = FastAPI(title="Deskgate API", version=__version__)
    app.state.runtime = runtime

    @app.exception_handler(APIError)
    def handle_api_error(_: Request, exc: APIError) -> JSONResponse:
        if isinstance(exc, ExecutionFailure):
            logger.error("execution failed: %s", exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error={
                    "code": exc.payload.code,
                    "message": exc.payload.message,
                }
            ).model_dump(),
        )

    app.include_router(
        build_contract_router(runtime=runtime, prefix=runtime.settings.api_prefix)
    )
    return app


app = create_app()
