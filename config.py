"""
Application Settings

Every value comes from the environment (a local .env file is loaded first),
so deployments and tests can change behaviour without touching code.
"""
import json
import logging
import os
import sys
from typing import Dict, List

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    return int(value)


# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRES_HOURS = _int_env("JWT_EXPIRES_HOURS", 24)
COOKIE_NAME = "access_token"
COOKIE_SECURE = _bool_env("COOKIE_SECURE", os.getenv("ENVIRONMENT") == "production")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# Email
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Home Decor and More <orders@example.com>")
STORE_NAME = os.getenv("STORE_NAME", "Home Decor and More")
NOTIFICATION_MAX_ATTEMPTS = _int_env("NOTIFICATION_MAX_ATTEMPTS", 5)
NOTIFICATION_RETRY_BASE_SECONDS = _int_env("NOTIFICATION_RETRY_BASE_SECONDS", 60)

# Orders
ORDER_NUMBER_MAX_ATTEMPTS = _int_env("ORDER_NUMBER_MAX_ATTEMPTS", 5)
ORDER_STRICT_TRANSITIONS = _bool_env("ORDER_STRICT_TRANSITIONS")

# Catalog
DEFAULT_HERO_IMAGE = os.getenv(
    "DEFAULT_HERO_IMAGE",
    "https://images.unsplash.com/photo-1484101403633-562f891dc89a?w=1200&h=600&fit=crop",
)
DATA_DIR_NAME = "home-decor-store-api"


def default_category_images_file() -> str:
    """The bundled map: beside this module in a checkout, under <prefix>/share once installed."""
    candidates = [
        os.path.join(os.path.dirname(os.path.abspath(__file__)), "category_images.json"),
        os.path.join(sys.prefix, "share", DATA_DIR_NAME, "category_images.json"),
    ]
    for path in candidates:
        if os.path.exists(path):
            return path
    return candidates[0]


CATEGORY_HERO_IMAGES_FILE = os.getenv("CATEGORY_HERO_IMAGES_FILE") or default_category_images_file()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def load_category_images() -> Dict[str, str]:
    """Fallback hero images keyed by lowercase category name.

    CATEGORY_HERO_IMAGES (inline JSON) wins over CATEGORY_HERO_IMAGES_FILE.
    A missing file yields an empty map.
    """
    raw = os.getenv("CATEGORY_HERO_IMAGES")
    if raw:
        data = json.loads(raw)
    elif os.path.exists(CATEGORY_HERO_IMAGES_FILE):
        with open(CATEGORY_HERO_IMAGES_FILE, encoding="utf-8") as fh:
            data = json.load(fh)
    else:
        logger.warning(f"Category image map not found at {CATEGORY_HERO_IMAGES_FILE}")
        return {}
    return {str(k).lower(): str(v) for k, v in data.items()}
