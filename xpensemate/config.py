"""
Configuration

Values come from the environment, with a local .env file loaded first.
The token file plays the part of browser local storage: it is re-read on
every request so a login elsewhere is picked up without a restart.
"""

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# === Backend ===
API_URL = os.environ.get("XPENSEMATE_API_URL", "http://localhost:5000/api")
REQUEST_TIMEOUT = os.environ.get("XPENSEMATE_REQUEST_TIMEOUT")  # unset means no timeout

# === Credentials ===
TOKEN = os.environ.get("XPENSEMATE_TOKEN")
TOKEN_FILE = os.environ.get(
    "XPENSEMATE_TOKEN_FILE",
    os.path.join(os.path.expanduser("~"), ".xpensemate", "token")
)

# === Views ===
PAGE_SIZE = int(os.environ.get("XPENSEMATE_PAGE_SIZE", "10"))
NOTIFICATION_SECONDS = float(os.environ.get("XPENSEMATE_NOTIFICATION_SECONDS", "3"))

# === Logging ===
LOG_LEVEL = os.environ.get("XPENSEMATE_LOG_LEVEL", "INFO")


def request_timeout() -> Optional[float]:
    return float(REQUEST_TIMEOUT) if REQUEST_TIMEOUT else None


def token_provider(path: Optional[str] = None) -> Optional[str]:
    """Current bearer token: the token file if it holds one, else XPENSEMATE_TOKEN."""
    path = path or TOKEN_FILE
    try:
        with open(path, "r", encoding="utf-8") as f:
            token = f.read().strip()
    except OSError:
        token = ""
    return token or TOKEN


def clear_token(path: Optional[str] = None) -> None:
    """Forget the stored token, as the session layer does on a 401."""
    path = path or TOKEN_FILE
    if os.path.exists(path):
        os.remove(path)
