import os
from pathlib import Path

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "matchmaking")
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

# --- Auth ---
JWT_ALGORITHM = "HS256"

# --- Media ---
BASE_DIR = Path(__file__).parent.resolve()
UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str((BASE_DIR / "uploads").resolve())))
UPLOADS_PREFIX = "/uploads/profile-photos/"
DEFAULT_PROFILE_IMAGE = "/public/default_profile_image.png"

# --- Push gateway ---
PUSH_GATEWAY_URL = os.getenv("PUSH_GATEWAY_URL", "")
PUSH_GATEWAY_KEY = os.getenv("PUSH_GATEWAY_KEY", "")
PUSH_TIMEOUT_SEC = float(os.getenv("PUSH_TIMEOUT_SEC", "5"))

# --- Plans & boosts ---
FREE_PLAN = os.getenv("FREE_PLAN", "free")
DEFAULT_BOOST_MINUTES = int(os.getenv("DEFAULT_BOOST_MINUTES", "180"))

# --- Server ---
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def jwt_secret() -> str:
    # no fallback: a missing secret must stop the service from starting
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET is not set; refusing to start without a signing secret")
    return secret


def require_settings() -> None:
    jwt_secret()
