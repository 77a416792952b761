import os
from dotenv import load_dotenv

load_dotenv()


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


# --- DataForSEO ranking provider ---
DATAFORSEO_LOGIN = os.getenv("DATAFORSEO_LOGIN", "")
DATAFORSEO_PASSWORD = os.getenv("DATAFORSEO_PASSWORD", "")
DATAFORSEO_BASE_URL = os.getenv("DATAFORSEO_BASE_URL", "https://api.dataforseo.com/v3")

# --- Admin ---
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:8000,http://localhost:3000").split(",")

# --- Task parameters (fixed per query) ---
LANGUAGE_CODE = "en"
DEVICE = "desktop"
OS = "windows"
RESULT_DEPTH = 20
DEFAULT_LOCATION_CODE = 2840  # United States

# --- Polling ---
POLL_DELAY_S = float(os.getenv("POLL_DELAY_S", "10"))
POLL_MAX_ATTEMPTS = int(os.getenv("POLL_MAX_ATTEMPTS", "1"))
POLL_RETRY_DELAY_S = 5.0

# --- HTTP / rate limiting ---
HTTP_TIMEOUT_S = 15.0
PROVIDER_CONCURRENCY = int(os.getenv("PROVIDER_CONCURRENCY", "5"))
PROVIDER_RETRY_MAX = 3

# --- Grid ---
EARTH_RADIUS_KM = 6371.0
DEFAULT_GRID_SIZE = 5
DEFAULT_RADIUS_KM = 5.0

# --- Simulator / matcher ---
MAX_RANK_VARIATION = 10     # positions lost at the grid edge
MIN_MATCH_WORD_LENGTH = 3   # partial-match words must be strictly longer
AUDIT_TIMEOUT_S = float(os.getenv("AUDIT_TIMEOUT_S", "90"))

# Named location used when the center lookup misses; empty = nearest known city
FALLBACK_LOCATION = os.getenv("FALLBACK_LOCATION", "")


def require_credentials() -> tuple[str, str]:
    """Return (login, password) for the provider or raise ConfigError."""
    if not DATAFORSEO_LOGIN or not DATAFORSEO_PASSWORD:
        raise ConfigError("DATAFORSEO_LOGIN and DATAFORSEO_PASSWORD must be set in the environment.")
    return DATAFORSEO_LOGIN, DATAFORSEO_PASSWORD
