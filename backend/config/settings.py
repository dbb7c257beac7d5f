# config/settings.py
from pathlib import Path
import os

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# .env at the repository root, then backend/
load_dotenv(BASE_DIR.parent / ".env")
load_dotenv(BASE_DIR / ".env")


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "flights",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "flights",
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
}

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "flights": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

# --- Flight provider (Amadeus Self-Service) ---
FLIGHTS_PROVIDER = os.getenv("FLIGHTS_PROVIDER", "amadeus")
AMADEUS_CLIENT_ID = os.getenv("AMADEUS_CLIENT_ID")
AMADEUS_CLIENT_SECRET = os.getenv("AMADEUS_CLIENT_SECRET")
AMADEUS_BASE_URL = os.getenv("AMADEUS_BASE_URL", "https://test.api.amadeus.com")
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")
FLIGHTS_RESPONSE_CACHE_TTL = int(os.getenv("FLIGHTS_RESPONSE_CACHE_TTL", "300"))
FLIGHTS_SEARCH_MAX_RESULTS = int(os.getenv("FLIGHTS_SEARCH_MAX_RESULTS", "50"))

# "filtered" normalizes best scores over the visible offers, "all" over the whole result
FLIGHTS_BEST_SCORE_BASELINE = os.getenv("FLIGHTS_BEST_SCORE_BASELINE", "filtered")

# --- Price calendar ---
CALENDAR_MAX_REQUESTS = int(os.getenv("CALENDAR_MAX_REQUESTS", "15"))
CALENDAR_MAX_GRID_CELLS = int(os.getenv("CALENDAR_MAX_GRID_CELLS", "28"))
CALENDAR_REQUEST_DELAY = float(os.getenv("CALENDAR_REQUEST_DELAY", "0.05"))
CALENDAR_PAUSE_EVERY = int(os.getenv("CALENDAR_PAUSE_EVERY", "3"))
CALENDAR_PAUSE_SECONDS = float(os.getenv("CALENDAR_PAUSE_SECONDS", "0.3"))
