"""
Base settings. Intended to be imported by local.py, production.py and test.py.
Contains production-safe defaults; every blockchain knob can be overridden from the environment.
"""
import os
from pathlib import Path
from datetime import timedelta

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(BASE_DIR / ".env")  # reads .env at project root

ENV = os.environ.get("DJANGO_ENV", "local")

# SECRET_KEY should be overridden via environment in production
SECRET_KEY = os.environ.get("SECRET_KEY", "replace-me-for-dev-only")
DEBUG = os.environ.get("DEBUG", "False").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


def env_bool(name, default):
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes")


# Application definition
INSTALLED_APPS = [
    # Django
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",
    "drf_spectacular",
    "django_extensions",
    "django_celery_beat",
    "django_celery_results",
    "django_filters",

    # Local apps
    "apps.accounts.apps.AccountsConfig",
    "apps.events.apps.EventsConfig",
    "apps.blockchain.apps.BlockchainConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",

    # Common middleware
    "common.middleware.RequestLoggingMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# Database default is sqlite (override in local/production)
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
        "OPTIONS": {"min_length": 10},
    },
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

# Static files
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Custom user
AUTH_USER_MODEL = "accounts.User"

# REST Framework + JWT settings
REST_FRAMEWORK = {
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        # Keep SessionAuthentication for the browsable API
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "DEFAULT_PAGINATION_CLASS": "common.pagination.StandardResultsSetPagination",
    "PAGE_SIZE": 25,
    "DEFAULT_FILTER_BACKENDS": (
        "django_filters.rest_framework.DjangoFilterBackend",
        "rest_framework.filters.SearchFilter",
        "rest_framework.filters.OrderingFilter",
    ),
    "EXCEPTION_HANDLER": "common.exceptions.custom_exception_handler",
}

# drf-spectacular settings
SPECTACULAR_SETTINGS = {
    "TITLE": "Ticket Mint API",
    "DESCRIPTION": "Events, tickets and their on-chain TicketNFT tokens",
    "VERSION": "1.0.0",
    "COMPONENT_SPLIT_REQUEST": True,
    "SERVE_INCLUDE_SCHEMA": False,
    "POSTPROCESSING_HOOKS": [],
    "SECURITY": [{"bearerAuth": []}],
    "COMPONENTS": {
        "securitySchemes": {
            "bearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        }
    },
}

# Simple JWT: read signing/validation config from environment
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=int(os.environ.get("JWT_ACCESS_MINUTES", 60))),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=int(os.environ.get("JWT_REFRESH_DAYS", 7))),
    "ALGORITHM": "HS256",
    "SIGNING_KEY": os.environ.get("JWT_SECRET", SECRET_KEY),
    "ISSUER": os.environ.get("JWT_ISSUER", None),
    "AUDIENCE": os.environ.get("JWT_AUDIENCE", None),
    "AUTH_HEADER_TYPES": ("Bearer",),
    "UPDATE_LAST_LOGIN": True,
}

# Caching: also backs the mint and signer locks, so any setup running more than one process needs a shared cache (Redis)
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "ticketmint",
    }
}

# Blockchain
BLOCKCHAIN_NETWORK = os.environ.get("BLOCKCHAIN_NETWORK", "sepolia")
BLOCKCHAIN_RPC_URL = os.environ.get("BLOCKCHAIN_RPC_URL", "http://127.0.0.1:8545")
CONTRACT_ADDRESS = os.environ.get("CONTRACT_ADDRESS", "")
# deployer key of the TicketNFT contract; only the owner may mint
SYSTEM_WALLET_PRIVATE_KEY = os.environ.get("SYSTEM_WALLET_PRIVATE_KEY", "")
BLOCKCHAIN_RPC_TIMEOUT = int(os.environ.get("BLOCKCHAIN_RPC_TIMEOUT", 30))
BLOCKCHAIN_TX_TIMEOUT = int(os.environ.get("BLOCKCHAIN_TX_TIMEOUT", 180))
BLOCKCHAIN_TX_POLL_LATENCY = float(os.environ.get("BLOCKCHAIN_TX_POLL_LATENCY", 2.0))
BLOCKCHAIN_MINT_LOCK_TIMEOUT = int(os.environ.get("BLOCKCHAIN_MINT_LOCK_TIMEOUT", 600))
BLOCKCHAIN_SIGNER_LOCK_WAIT = float(os.environ.get("BLOCKCHAIN_SIGNER_LOCK_WAIT", 300))
BLOCKCHAIN_SYNC_INTERVAL = int(os.environ.get("BLOCKCHAIN_SYNC_INTERVAL", 60))
BLOCKCHAIN_SYNC_BATCH_SIZE = int(os.environ.get("BLOCKCHAIN_SYNC_BATCH_SIZE", 10))
BLOCKCHAIN_MINT_DELAY_AFTER_EVENT_END = int(os.environ.get("BLOCKCHAIN_MINT_DELAY_AFTER_EVENT_END", 180))
BLOCKCHAIN_SCHEDULE_ON_CREATE = env_bool("BLOCKCHAIN_SCHEDULE_ON_CREATE", True)
TICKET_METADATA_BASE_URL = os.environ.get("TICKET_METADATA_BASE_URL", "http://localhost:8000/api/v1/tickets/metadata")

# Confirmation webhooks sent to each event's postback_url
WEBHOOK_TIMEOUT = int(os.environ.get("WEBHOOK_TIMEOUT", 10))
EVENTS_WEBHOOK_SECRET = os.environ.get("EVENTS_WEBHOOK_SECRET", "")

# Celery settings
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "django-db")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"
# the blockchain queue runs on a worker with --concurrency=1: one signer, one nonce sequence
CELERY_TASK_ROUTES = {
    "apps.blockchain.tasks.*": {"queue": "blockchain"},
}
CELERY_BEAT_SCHEDULE = {
    "blockchain-process-pending-tickets": {
        "task": "apps.blockchain.tasks.process_pending_tickets",
        "schedule": timedelta(seconds=BLOCKCHAIN_SYNC_INTERVAL),
    },
}

# Logging - verbose for dev, less for prod
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(levelname)s %(asctime)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": os.environ.get("LOG_LEVEL", "DEBUG")},
    "loggers": {
        "apps.blockchain": {
            "handlers": ["console"],
            "level": os.environ.get("BLOCKCHAIN_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
