from .settings import *
import os

DEBUG = False
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(',')
CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(',')

EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels_redis.core.RedisChannelLayer",
        "CONFIG": {
            "hosts": [os.getenv("REDIS_URL", "redis://localhost:6379/0")],
        },
    }
}

# Dispatch overrides
DISPATCH = {
    **DISPATCH,
    "NOTIFIER_CLASS": os.getenv("DISPATCH_NOTIFIER_CLASS", "common.notifier.EmailNotifier"),
    "DISPATCH_WORKERS": int(os.getenv("DISPATCH_WORKERS", 8)),
    "MAX_CONCURRENT_SENDS": int(os.getenv("DISPATCH_MAX_CONCURRENT_SENDS", 50)),
    "NEARBY_WINDOW_HOURS": float(os.getenv("DISPATCH_NEARBY_WINDOW_HOURS", 24)),
    "FROM_EMAIL": os.getenv("DISPATCH_FROM_EMAIL") or None,
}
