from contextlib import asynccontextmanager
import logging
import random

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mediathek import __version__
from mediathek.config import Settings, settings, setup_logging
from mediathek.database import close_db, init_db
from mediathek.dependencies import build_services, set_services
from mediathek.routers import main_router


logger = logging.getLogger(__name__)


def create_app(
    config: Settings | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    rng: random.Random | None = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """Build the application; tests pass their own settings and HTTP client."""
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        logger.info("Starting Mediathek Catalog...")

        try:
            logger.info("Initializing database...")
            session_factory = await init_db(config)

            services = build_services(config, session_factory, client=client, rng=rng)
            await services.view.refresh()
            set_services(services)

            if start_scheduler:
                logger.info("Starting scheduler...")
                services.scheduler.start()

            logger.info("Mediathek Catalog started successfully")
        except Exception as e:
            logger.error(f"Failed to start Mediathek Catalog: {e}", exc_info=True)
            raise

        yield

        logger.info("Shutting down Mediathek Catalog...")

        try:
            services.scheduler.shutdown()
            await services.controller.aclose()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)
        finally:
            set_services(None)
            await close_db()

        logger.info("Mediathek Catalog stopped")

    app = FastAPI(
        title="Mediathek Catalog",
        version=__version__,
        lifespan=lifespan
    )

    app.include_router(main_router)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log validation errors with details"""
        logger.error(f"Validation error for {request.method} {request.url.path}")
        logger.error(f"Validation details: {exc.errors()}")

        errors = []
        for error in exc.errors():
            error_dict = {
                "type": error.get("type"),
                "loc": error.get("loc"),
                "msg": error.get("msg"),
                "input": str(error.get("input", ""))[:100]
            }
            errors.append(error_dict)

        return JSONResponse(
            status_code=422,
            content={
                "detail": errors
            }
        )

    return app


def run() -> None:
    """Console entry point"""
    setup_logging()
    uvicorn.run(create_app(), host="127.0.0.1", port=8000)


if __name__ == "__main__":
    run()
