"""
Test settings: in-memory database, channel layer, mail outbox and eager Celery.

Usage:
    pytest  (DJANGO_SETTINGS_MODULE is set in pyproject.toml)
"""

from .settings import *  # noqa: F401, F403

DEBUG = False
SECRET_KEY = "test-secret-key"

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Use a faster password hasher for tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

# Execute tasks synchronously during tests
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

DISPATCH = {
    "DEFAULT_RADIUS_KM": 10.0,
    "SEND_TIMEOUT_SECONDS": 1.0,
    "MAX_CONCURRENT_SENDS": 5,
    "FALLBACK_TO_LIVE_CANDIDATES": True,
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {'null': {'class': 'logging.NullHandler'}},
    'root': {'handlers': ['null']},
}
