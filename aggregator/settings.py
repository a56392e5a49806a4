"""
Django settings for the link aggregator.

Everything deployment-specific comes from the environment:

    DJANGO_SECRET_KEY       signing key for Django (set it in any real deployment)
    DJANGO_DEBUG            '1' to enable debug mode and GraphiQL
    DJANGO_ALLOWED_HOSTS    comma-separated host names
    AGGREGATOR_DB_NAME      path of the SQLite database file
    JWT_SECRET              key for bearer tokens (defaults to DJANGO_SECRET_KEY)
    JWT_EXPIRATION_DAYS     bearer token lifetime, in days (default 5)
    AGGREGATOR_LOG_LEVEL    level for the service's own loggers (default INFO)
"""

import datetime
import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent

DEBUG = os.environ.get('DJANGO_DEBUG', '') == '1'

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'insecure-dev-key-do-not-deploy-7c1f0e9a2b4d6385')

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')
                 if h]

INSTALLED_APPS = [
    'django.contrib.staticfiles',  # for GraphiQL
    'graphene_django',
    'django_filters',
    'links.apps.LinksConfig',
    'users.apps.UsersConfig',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'aggregator.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {},
    },
]

WSGI_APPLICATION = 'aggregator.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('AGGREGATOR_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

USE_TZ = True
TIME_ZONE = 'UTC'

STATIC_URL = '/static/'

GRAPHENE = {
    'SCHEMA': 'aggregator.schema.schema',
    'MIDDLEWARE': ['aggregator.schema.ErrorLoggingMiddleware'],
}

JWT_SECRET = os.environ.get('JWT_SECRET', SECRET_KEY)
JWT_EXPIRATION = datetime.timedelta(days=int(os.environ.get('JWT_EXPIRATION_DAYS', '5')))

LOG_LEVEL = os.environ.get('AGGREGATOR_LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'aggregator': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'links': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'users': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
