# config.py
import os
import logging
from typing import Optional

APP_NAME = "Rifle Range Logger"

DATA_DIR = os.getenv("RANGE_LOG_DATA_DIR", "data")
DATA_PATH = os.path.join(DATA_DIR, "range_log.json")
PHOTOS_DIR = os.path.join(DATA_DIR, "photos")
LOG_DIR = os.getenv("RANGE_LOG_LOG_DIR", "logs")

# Key-value namespaces
ENTRIES_KEY = "rangeEntries"
DOPE_CARDS_KEY = "dope_cards"

MAX_SHOTS = 12
DOPE_RANGES = ["600", "700", "800", "900", "1000", "1100", "1200"]
DEFAULT_EXPORT_NAME = "range_data_export"
DEFAULT_CLASS = "TR"
CLASSES = ["TR", "F-Open", "F-TR", "Match", "Sporting"]


def get_setting(section: str, key: str, env: Optional[str] = None, default=None):
    """Read a value from Streamlit secrets, falling back to an env var."""
    try:
        import streamlit as st  # type: ignore
        if section in st.secrets:
            v = st.secrets[section].get(key)
            if v is not None:
                return v
    except Exception:
        # No secrets.toml (tests, plain scripts)
        pass
    if env:
        v = os.getenv(env)
        if v is not None:
            return v
    return default


def require_auth() -> bool:
    val = get_setting("auth", "require", env="REQUIRE_AUTH", default="1")
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in ("1", "true", "yes")


def setup_logging(level: int = logging.INFO) -> None:
    """Set up application logging (file under LOG_DIR plus stderr)."""
    root = logging.getLogger()
    if root.handlers:
        # Streamlit reruns the script; configure once per process
        return
    os.makedirs(LOG_DIR, exist_ok=True)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(os.path.join(LOG_DIR, "range_log.log")),
            logging.StreamHandler(),
        ],
    )
