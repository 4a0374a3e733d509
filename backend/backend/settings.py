"""
Django settings for the catalog image generation backend.

Values come from the environment; a ``.env`` file next to the repository root
is loaded first so local runs and Celery workers see the same configuration.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR.parent / '.env')


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-local-development-key')
DEBUG = _env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = [host for host in os.getenv('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if host]

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'accounts',
    'catalog',
    'billing',
    'generation',
]

MIDDLEWARE = []

AUTH_USER_MODEL = 'accounts.User'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Database
# SQLite takes the write lock at BEGIN so concurrent ledger mutations queue
# instead of failing; PostgreSQL relies on SELECT ... FOR UPDATE row locks.
if os.getenv('DB_ENGINE', 'sqlite') == 'postgres':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME', 'catalog_images'),
            'USER': os.getenv('DB_USER', 'postgres'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
            'CONN_MAX_AGE': _env_int('DB_CONN_MAX_AGE', 60),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.getenv('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
            'OPTIONS': {
                'transaction_mode': 'IMMEDIATE',
                'timeout': 20,
            },
            'TEST': {
                'NAME': str(BASE_DIR / 'test_db.sqlite3'),
            },
        }
    }

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = False
USE_TZ = True

# Blob storage for reference assets and generated artifacts
MEDIA_ROOT = os.getenv('MEDIA_ROOT', str(BASE_DIR / 'media'))
MEDIA_URL = os.getenv('MEDIA_URL', '/media/')

# Credits
IMAGE_GENERATION_COST = _env_int('IMAGE_GENERATION_COST', 5)
BULK_GENERATION_COST_PER_IMAGE = _env_int('BULK_GENERATION_COST_PER_IMAGE', 5)
SIGNUP_BONUS_CREDITS = _env_int('SIGNUP_BONUS_CREDITS', 10)

# Image generation
IMAGE_RETENTION_HOURS = _env_int('IMAGE_RETENTION_HOURS', 6)
BULK_GENERATION_MAX_WORKERS = _env_int('BULK_GENERATION_MAX_WORKERS', 4)
ARTIFACT_SWEEP_LOOKBACK_HOURS = _env_int('ARTIFACT_SWEEP_LOOKBACK_HOURS', 24)
REFERENCE_DOWNLOAD_TIMEOUT_SECONDS = _env_int('REFERENCE_DOWNLOAD_TIMEOUT_SECONDS', 30)

GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
GEMINI_API_URL = os.getenv('GEMINI_API_URL', 'https://generativelanguage.googleapis.com/v1beta')
GEMINI_IMAGE_MODEL = os.getenv('GEMINI_IMAGE_MODEL', 'gemini-2.5-flash-image')
GEMINI_TIMEOUT_SECONDS = _env_int('GEMINI_TIMEOUT_SECONDS', 120)

# Celery
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = _env_bool('CELERY_TASK_ALWAYS_EAGER', False)
# Redis hands an unacked message to another worker once this expires, so it
# must outlive the longest deletion countdown.
CELERY_BROKER_TRANSPORT_OPTIONS = {
    'visibility_timeout': (IMAGE_RETENTION_HOURS + 1) * 3600,
}

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'billing': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'django.db.backends': {
            'level': 'WARNING',
        },
    },
}
