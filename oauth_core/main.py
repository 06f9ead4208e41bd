# oauth_core/main.py
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request as StarletteRequest
from contextlib import asynccontextmanager
import logging
import sqlite3
from typing import Dict
from dotenv import load_dotenv
load_dotenv()

from . import __version__
from .settings import settings
from .dependencies import get_oauth_service, reset_oauth_service
from .oauth.endpoints import oauth_router, well_known_router
from .oauth.errors import OAuthError, to_oauth_error
from .oauth.exceptions import OAuthServiceError
from .oauth.sqlite_token_store import reset_sqlite_token_store
from .clients_admin.endpoints import oauth_clients_admin_router
from .storage.sqlite_base import close_sqlite_db_connection, get_sqlite_db_connection

# Configure logging based on debug mode setting
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level="DEBUG" if settings.debug_mode else settings.log_level.upper(),
        format='%(asctime)s - %(name)s [%(levelname)s] - %(message)s'
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def oauth_core_app_lifespan(app_instance: FastAPI):
    """
    Open the SQLite connection and build the OAuth service on startup, and
    release them on shutdown.
    """
    logger.info("Application startup initiated.")
    try:
        service = await get_oauth_service()
    except Exception as e:
        logger.error(f"Error during storage backend initialization: {e}", exc_info=True)
        raise
    logger.info("OAuth service and SQLite token store initialized.")

    yield

    logger.info("Application shutdown initiated.")
    try:
        await service.store.teardown()
        await close_sqlite_db_connection()
    except sqlite3.Error as e:
        logger.error(f"Teardown error: {e}", exc_info=True)
    finally:
        reset_oauth_service()
        reset_sqlite_token_store()
    logger.info("All components torn down.")


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug_mode,
    version=__version__,
    lifespan=oauth_core_app_lifespan
)


@app.exception_handler(OAuthError)
async def oauth_error_handler(request: StarletteRequest, exc: OAuthError) -> JSONResponse:
    """Render OAuth errors as RFC 6749 bodies: {error, error_description} at the top level."""
    headers = dict(exc.headers or {})
    headers["Cache-Control"] = "no-store"
    headers["Pragma"] = "no-cache"
    return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=headers)


@app.exception_handler(OAuthServiceError)
async def oauth_service_error_handler(request: StarletteRequest, exc: OAuthServiceError) -> JSONResponse:
    """Domain errors that escape a route are rendered through the same RFC body."""
    logger.error(f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc.description}")
    return await oauth_error_handler(request, to_oauth_error(exc))


@app.get("/")
async def root_api():
    return {"message": f"Welcome to {settings.app_name}!"}


@app.get("/health")
async def health_api():
    """Health check endpoint that validates storage backend connectivity."""
    store_statuses: Dict[str, str] = {}
    all_healthy = True

    try:
        conn = await get_sqlite_db_connection()
        conn.execute("SELECT 1")
        store_statuses["sqlite_main_db"] = "healthy"
    except sqlite3.Error as e:
        store_statuses["sqlite_main_db"] = f"unhealthy: {e}"
        all_healthy = False

    return {
        "status": "healthy" if all_healthy else "degraded",
        "details": store_statuses
    }


app.include_router(oauth_router)
app.include_router(well_known_router)
app.include_router(oauth_clients_admin_router)

logger.info(f"{settings.app_name} initialized. Routers mounted.")
