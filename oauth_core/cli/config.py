# oauth_core/cli/config.py
import os
from dotenv import load_dotenv
from pathlib import Path
from typing import Optional

# This cli/config.py file is at <project>/oauth_core/cli/config.py
project_root = Path(__file__).parent.parent.parent.resolve()

load_dotenv(dotenv_path=project_root / '.env', override=True)

OAUTH_CORE_CLI_API_BASE_URL = os.getenv("OAUTH_CORE_CLI_API_BASE_URL", "http://127.0.0.1:8000").rstrip('/')

# Same key the server checks on /admin routes
OAUTH_CORE_CLI_ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

OAUTH_CORE_CLI_TIMEOUT_SECONDS = float(os.getenv("OAUTH_CORE_CLI_TIMEOUT_SECONDS", "30"))


def apply_overrides(base_url: Optional[str] = None, admin_api_key: Optional[str] = None) -> None:
    """Command line options win over .env values for the rest of the invocation."""
    global OAUTH_CORE_CLI_API_BASE_URL, OAUTH_CORE_CLI_ADMIN_API_KEY
    if base_url:
        OAUTH_CORE_CLI_API_BASE_URL = base_url.rstrip('/')
    if admin_api_key:
        OAUTH_CORE_CLI_ADMIN_API_KEY = admin_api_key
