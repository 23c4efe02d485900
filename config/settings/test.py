"""Test settings for the Lotus checkout service.

In-memory SQLite, eager Celery, in-memory email and fixed gateway secrets
so signatures can be computed in tests.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

PAYMENT_GATEWAY = {
    **PAYMENT_GATEWAY,
    'KEY_ID': 'rzp_test_key',
    'KEY_SECRET': 'test-key-secret',
    'WEBHOOK_SECRET': 'test-webhook-secret',
    'BASE_URL': 'https://gateway.test/v1/',
    'MAX_RETRIES': 2,
    'BACKOFF_FACTOR': 0,
    'CONFIRM_WITH_API': False,
}

TWILIO_ACCOUNT_SID = ''
TWILIO_AUTH_TOKEN = ''
TWILIO_FROM_NUMBER = ''
