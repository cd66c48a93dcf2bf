# formbuilder/core/config.py
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# .env im Projekt-Root bevorzugen, sonst die Standardsuche von python-dotenv
dotenv_path = os.path.join(os.path.dirname(__file__), "..", "..", ".env")
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)
else:
    load_dotenv()

def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")

# --- Datenbank ---
DATABASE_URL = os.getenv("DATABASE_URL")
DB_ECHO = _get_bool("DB_ECHO", False)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "0"))
DB_POOL_TIMEOUT = float(os.getenv("DB_POOL_TIMEOUT", "5"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "1800"))

# --- Tokens ---
JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24"))
LINK_TOKEN_EXPIRE_HOURS = int(os.getenv("LINK_TOKEN_EXPIRE_HOURS", "24"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# --- Links in E-Mails ---
APP_DOMAIN_NAME = os.getenv("APP_DOMAIN_NAME", "http://127.0.0.1:8000")

# --- SMTP ---
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER or "no-reply@localhost")
SMTP_START_TLS = _get_bool("SMTP_START_TLS", True)

# --- Formulare ---
DEFAULT_UPDATE_WINDOW_HOURS = int(os.getenv("DEFAULT_UPDATE_WINDOW_HOURS", "24"))
COLLAB_SAVE_DELAY_SECONDS = float(os.getenv("COLLAB_SAVE_DELAY_SECONDS", "5"))

# --- CORS ---
FALLBACK_ORIGINS = [
    "http://127.0.0.1:3000",
    "http://localhost:3000",
]
BACKEND_ALLOWED_ORIGINS = os.getenv("BACKEND_ALLOWED_ORIGINS")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Bild-Uploads ---
UPLOAD_DIR = os.getenv(
    "UPLOAD_DIR", os.path.join(os.path.dirname(__file__), "..", "uploads", "images")
)
STATIC_FILES_ROUTE = "/static_images"

if JWT_SECRET == "change-me":
    logger.warning("JWT_SECRET is not set, using an insecure development secret.")
