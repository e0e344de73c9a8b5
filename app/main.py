from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.routes_relay import router as relay_router
from app.routes_admin import router as admin_router
from core.errors import BadRequest, InternalError, RelayError
from core.relay import Relay
from data.repo import Repo
from utils.env import Settings, load_settings
from utils.logging import configure_logging

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.repo.init_db()
    yield


def create_app(settings: Optional[Settings] = None, repo: Optional[Repo] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    repo = repo or Repo(settings.database_url)

    app = FastAPI(title="Relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.repo = repo
    app.state.relay = Relay(repo, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],   # Authorization from the device, Content-Type from the browser
    )
    app.include_router(relay_router, tags=["relay"])
    app.include_router(admin_router, tags=["admin"])

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        err = BadRequest("Malformed request")
        return JSONResponse(status_code=err.status_code, content=err.to_body())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.exception("request.unhandled", path=request.url.path)
        err = InternalError()
        return JSONResponse(status_code=err.status_code, content=err.to_body())

    return app

app = create_app()
