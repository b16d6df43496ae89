import argparse
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.db import STORE_ERRORS, PgPool
from core.logging_setup import APP_LOGGER_NAME, configure_logging
from core.migrate import MigrationRunner
from core.settings import Settings, load_settings
from quotes import router as quotes_router
from quotes.repository import QuoteRepository


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    log = logging.getLogger(APP_LOGGER_NAME)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        log.info("starting server")
        log.debug("debug messages are enabled")

        # One pool per process; migrations run on it before any route is served.
        connector = await PgPool.connect(settings, log.getChild("db"))
        try:
            await MigrationRunner(connector, log.getChild("migrate")).run()
        except BaseException:
            log.error("failed to migrate db, refusing to start")
            await connector.close()
            raise

        app.state.db = connector
        app.state.storage = QuoteRepository(connector, log.getChild("storage"))
        try:
            yield
        finally:
            log.debug("shutting down server")
            app.state.storage = None
            app.state.db = None
            await connector.close()

    app = FastAPI(title="quotemanager", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        log.warning("invalid_request path=%s errors=%s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid request body."},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled_error path=%s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error."},
        )

    app.include_router(quotes_router.router, tags=["quotes"])

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        connector = getattr(request.app.state, "db", None)
        if connector is not None:
            try:
                await connector.ping()
                return JSONResponse({"status": "ok", "database": "ok"})
            except STORE_ERRORS as exc:
                log.warning("health_db_ping_failed error=%r", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "database": "unavailable"},
        )

    @app.get("/")
    def root() -> dict:
        return {"message": "quotemanager api"}

    return app


app = create_app()


def run(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="quotemanager")
    parser.add_argument("--config", default=None, help="path to a dotenv file (default: .env if present)")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.log_level)
    host, port = settings.http_host_port()
    # log_config=None keeps the handlers installed by configure_logging.
    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        timeout_keep_alive=max(1, int(settings.http_timeout)),
        log_config=None,
    )


if __name__ == "__main__":
    run()
