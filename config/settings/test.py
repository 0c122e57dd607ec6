"""
Django test settings for the EHS escalation service.

Used by pytest-django (see [tool.pytest.ini_options] in pyproject.toml).
"""

from .base import *

DEBUG = False

ALLOWED_HOSTS = ['testserver', 'localhost']

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Fast hashing for test users
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
SMS_BACKEND = 'console'
SITE_URL = 'https://ehs.example.com'
TIME_ZONE = 'UTC'

ESCALATION_ENGINE = {
    **ESCALATION_ENGINE,
    'MAX_WORKERS': 1,
    'REOPEN_STARTS_NEW_EPISODE': False,
    'SMS_PRIORITIES': ['critical'],
}

Q_CLUSTER = {
    **Q_CLUSTER,
    'sync': True,
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'root': {
        'handlers': ['null'],
        'level': 'WARNING',
    },
}
