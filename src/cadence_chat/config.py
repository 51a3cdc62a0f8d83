"""Environment-driven configuration for the assistant client."""

import os
import sys
from pathlib import Path

DEFAULT_BASE_URL = "https://api.openai.com/v1"

REQUEST_TIMEOUT = 30.0  # seconds, per non-streaming request
MAX_ATTEMPTS = 3
RETRY_DELAY = 2.0  # seconds, multiplied by the attempt number
POLL_INTERVAL = 1.0
FINAL_MESSAGE_DELAY = 1.0
MAX_RUN_POLLS = 300
MESSAGE_PAGE_SIZE = 100


def get_api_key() -> str:
    """Return the API key, preferring CADENCE_API_KEY over OPENAI_API_KEY."""
    return os.environ.get("CADENCE_API_KEY") or os.environ.get("OPENAI_API_KEY", "")


def get_base_url() -> str:
    return os.environ.get("CADENCE_BASE_URL", DEFAULT_BASE_URL).rstrip("/")


def get_assistant_id() -> str:
    return os.environ.get("CADENCE_ASSISTANT_ID", "")


def get_model() -> str | None:
    """Return a model override for new runs, or None to use the assistant's model."""
    return os.environ.get("CADENCE_MODEL") or None


def get_data_dir() -> Path:
    """Return the directory holding the local conversation mirror."""
    env = os.environ.get("CADENCE_DATA_DIR")
    if env:
        return Path(env)

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Cadence"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "Cadence"
    else:  # Linux
        return Path.home() / ".local" / "share" / "cadence"


def get_db_path() -> Path:
    return get_data_dir() / "cadence.db"


def is_offline() -> bool:
    """Return True when CADENCE_OFFLINE asks the client to start disconnected."""
    return os.environ.get("CADENCE_OFFLINE", "").lower() in ("1", "true", "yes")


def get_default_headers(api_key: str) -> dict[str, str]:
    """Headers sent with every request; request-specific headers override these."""
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
        "OpenAI-Beta": "assistants=v2",
    }
