"""
Django base settings for the EHS escalation service.
Shared settings between development, production and test.
"""

from pathlib import Path
from decouple import config, Csv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config('SECRET_KEY', default='django-insecure-change-me-in-production')

# Application definition
DJANGO_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

THIRD_PARTY_APPS = [
    'django_q',
]

LOCAL_APPS = [
    'apps.accounts',
    'apps.departments',
    'apps.records',
    'apps.escalations',
    'apps.activity_log',
    'apps.notifications',
]

INSTALLED_APPS = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'


# =============================================================================
# AUTHENTICATION - CRITICAL: Custom User Model
# =============================================================================
# Must be set BEFORE first migration
AUTH_USER_MODEL = 'accounts.User'


# =============================================================================
# PASSWORD VALIDATION
# =============================================================================
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
        'OPTIONS': {
            'min_length': 12,
        }
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Password hashing - use Argon2 as primary
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.Argon2PasswordHasher',
    'django.contrib.auth.hashers.PBKDF2PasswordHasher',
    'django.contrib.auth.hashers.PBKDF2SHA1PasswordHasher',
]


# =============================================================================
# INTERNATIONALIZATION & TIMEZONE
# =============================================================================
LANGUAGE_CODE = 'en-us'

# Record dates without an offset are read in this zone
TIME_ZONE = config('TIME_ZONE', default='UTC')

USE_I18N = True

USE_TZ = True


# =============================================================================
# STATIC FILES
# =============================================================================
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# =============================================================================
# EMAIL SETTINGS
# =============================================================================
EMAIL_BACKEND = config(
    'EMAIL_BACKEND',
    default='django.core.mail.backends.console.EmailBackend'
)
EMAIL_HOST = config('EMAIL_HOST', default='localhost')
EMAIL_PORT = config('EMAIL_PORT', default=587, cast=int)
EMAIL_USE_TLS = config('EMAIL_USE_TLS', default=True, cast=bool)
EMAIL_HOST_USER = config('EMAIL_HOST_USER', default='')
EMAIL_HOST_PASSWORD = config('EMAIL_HOST_PASSWORD', default='')
# Seconds; delivery runs outside escalation locks but must not hang a worker
EMAIL_TIMEOUT = config('EMAIL_TIMEOUT', default=15, cast=int)

DEFAULT_FROM_EMAIL = config('DEFAULT_FROM_EMAIL', default='ehs-escalations@example.com')

# Site URL for record links in notifications
SITE_URL = config('SITE_URL', default='http://localhost:8000')


# =============================================================================
# SMS SETTINGS
# =============================================================================
# 'console' logs messages; 'http' posts JSON to SMS_GATEWAY_URL
SMS_BACKEND = config('SMS_BACKEND', default='console')
SMS_GATEWAY_URL = config('SMS_GATEWAY_URL', default='')
SMS_GATEWAY_TOKEN = config('SMS_GATEWAY_TOKEN', default='')
SMS_TIMEOUT = config('SMS_TIMEOUT', default=10, cast=int)
SMS_SENDER_ID = config('SMS_SENDER_ID', default='EHS')


# =============================================================================
# ESCALATION ENGINE
# =============================================================================
ESCALATION_ENGINE = {
    'SUPPRESSION_WINDOW_HOURS': config('ESCALATION_SUPPRESSION_WINDOW_HOURS', default=24, cast=int),
    'INSTANCE_RETENTION_DAYS': config('ESCALATION_INSTANCE_RETENTION_DAYS', default=7, cast=int),
    'CLAIM_TIMEOUT_MINUTES': config('ESCALATION_CLAIM_TIMEOUT_MINUTES', default=10, cast=int),
    'MAX_WORKERS': config('ESCALATION_MAX_WORKERS', default=4, cast=int),
    'REOPEN_STARTS_NEW_EPISODE': config('ESCALATION_REOPEN_STARTS_NEW_EPISODE', default=False, cast=bool),
    'SMS_MAX_LENGTH': 160,
    'SMS_PRIORITIES': config('ESCALATION_SMS_PRIORITIES', default='critical', cast=Csv()),
    'PROCESSING_INTERVAL_MINUTES': config('ESCALATION_PROCESSING_INTERVAL_MINUTES', default=5, cast=int),
    # Record statuses that end escalation, per module (case-insensitive)
    'COMPLETION_STATUSES': {
        'incidents': ['Closed', 'Resolved'],
        'work-permits': ['Closed', 'Completed', 'Approved'],
        'audits': ['Closed', 'Completed'],
    },
}


# =============================================================================
# DJANGO-Q2 SETTINGS (Background Tasks)
# =============================================================================
Q_CLUSTER = {
    'name': 'ehs_escalations',
    'workers': 2,
    'recycle': 500,
    'timeout': 300,
    'retry': 600,
    'compress': True,
    'save_limit': 250,
    'queue_limit': 500,
    'cpu_affinity': 1,
    'label': 'Django Q2',
    'orm': 'default',
}


# =============================================================================
# DEFAULT PRIMARY KEY FIELD TYPE
# =============================================================================
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
