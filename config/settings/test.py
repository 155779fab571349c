from .base import *  # noqa

DEBUG = False
SECRET_KEY = "test-secret-key"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "ticketmint-tests",
    }
}

CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

BLOCKCHAIN_SCHEDULE_ON_CREATE = False
BLOCKCHAIN_NETWORK = "localhost"
BLOCKCHAIN_RPC_URL = "http://127.0.0.1:8545"
CONTRACT_ADDRESS = ""
SYSTEM_WALLET_PRIVATE_KEY = ""
TICKET_METADATA_BASE_URL = "https://tickets.example.com/metadata/"
EVENTS_WEBHOOK_SECRET = ""

LOGGING["root"]["level"] = "WARNING"
LOGGING["loggers"]["apps.blockchain"]["level"] = "CRITICAL"
