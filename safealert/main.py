# main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException

from safealert.config import Settings
from safealert.crud.crud import EmergencyContactSource, PanicEventStore
from safealert.database import database
from safealert.exceptions import FatalRequestError
from safealert.routers import panic, panic_events, ping
from safealert.utils.alerts import NotificationDispatcher
from safealert.utils.email import EmailTransport
from safealert.utils.maps import AzureMapsClient
from safealert.utils.panic import PanicOrchestrator
from safealert.utils.vision import AzureVisionClient

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    maps_client=None,
    vision_client=None,
    email_transport=None,
) -> FastAPI:
    """
    Build the API. Provider clients and the email transport can be passed in
    (tests, alternative vendors); otherwise they are built from settings.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    # ---------------- Lifespan context ----------------
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Handles startup and shutdown events.
        Creates all tables on startup, wires the panic pipeline
        collaborators and logs the registered routes.
        """
        engine = database.create_engine_from_settings(settings)
        await database.create_tables(engine)
        session_factory = database.create_session_factory(engine)
        http_session = aiohttp.ClientSession()

        store = PanicEventStore(session_factory)
        dispatcher = NotificationDispatcher(
            transport=email_transport or EmailTransport(settings),
            store=store,
            app_name=settings.app_name,
        )
        app.state.session_factory = session_factory
        app.state.orchestrator = PanicOrchestrator(
            contacts=EmergencyContactSource(session_factory),
            store=store,
            dispatcher=dispatcher,
            maps_client=maps_client or AzureMapsClient(settings, http_session),
            vision_client=vision_client or AzureVisionClient(settings, http_session),
        )

        logger.info("📌 ROUTES REGISTERED:")
        for route in app.routes:
            if isinstance(route, APIRoute):
                methods = ",".join(route.methods)
                logger.info(f"{methods:10} -> {route.path}")

        try:
            yield
        finally:
            await http_session.close()
            await engine.dispose()

    # ---------------- FastAPI instance ----------------
    app = FastAPI(title=f"{settings.app_name} API", lifespan=lifespan)
    app.state.settings = settings

    # ---------------- Error bodies ----------------
    @app.exception_handler(FatalRequestError)
    async def fatal_request_handler(request: Request, exc: FatalRequestError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.error, "message": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        problems = [
            f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "message": "; ".join(problems)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred while processing the request",
            },
        )

    # ---------------- Include routers ----------------
    app.include_router(panic.router)
    app.include_router(panic_events.router)
    app.include_router(ping.router)

    return app


app = create_app()
