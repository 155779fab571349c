from .base import *  # noqa
import os
import dj_database_url

DEBUG = True
ALLOWED_HOSTS = ["*"]

# Local DB: sqlite unless DATABASE_URL is provided
DATABASE_URL = os.environ.get("DATABASE_URL", None)
if DATABASE_URL:
    DATABASES["default"] = dj_database_url.parse(DATABASE_URL, conn_max_age=60)

# In local, make email backend console
EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

# Share the mint and signer locks with a local Celery worker
REDIS_URL = os.environ.get("REDIS_URL", None)
if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": REDIS_URL,
            "OPTIONS": {"CLIENT_CLASS": "django_redis.client.DefaultClient"},
        }
    }
