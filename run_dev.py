import uvicorn
from dotenv import load_dotenv
import os
from pathlib import Path
import logging

# Configure logging before any application imports to ensure visibility
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s RUN_DEV.PY - [%(levelname)s] - %(message)s'
)
logger = logging.getLogger("run_dev_script")

TRUTHY = ["true", "1", "yes", "on", "t"]

if __name__ == "__main__":
    project_root = Path(__file__).parent.resolve()
    dotenv_path_explicit = project_root / ".env"

    if dotenv_path_explicit.exists():
        logger.info(f".env file FOUND at: {dotenv_path_explicit}")
        load_dotenv(dotenv_path=dotenv_path_explicit, override=True)
    else:
        logger.warning(f".env file NOT FOUND at: {dotenv_path_explicit}. "
                       "Will rely on OS environment variables or pydantic-settings defaults.")

    logger.info(f"ADMIN_API_KEY: {'********' if os.getenv('ADMIN_API_KEY') else 'None'}")
    logger.info(f"DEBUG_MODE: {os.getenv('DEBUG_MODE')}")
    logger.info(f"SQLITE_DB_PATH: {os.getenv('SQLITE_DB_PATH')}")

    host = os.getenv("DEV_SERVER_HOST", "127.0.0.1")
    port = int(os.getenv("DEV_SERVER_PORT", "8000"))
    uvicorn_log_level = os.getenv("DEV_SERVER_LOG_LEVEL", "info").lower()

    debug_mode = os.getenv("DEBUG_MODE", "False").lower() in TRUTHY
    reload_enabled = os.getenv("DEV_SERVER_RELOAD", str(debug_mode)).lower() in TRUTHY

    logger.info(f"Starting Uvicorn server on {host}:{port} (reload={reload_enabled})")

    uvicorn.run(
        "oauth_core.main:app",
        host=host,
        port=port,
        log_level=uvicorn_log_level,
        reload=reload_enabled
    )
