from pathlib import Path
from decouple import config
import dj_database_url

BASE_DIR = Path(__file__).resolve().parent.parent

LOGS_DIR = BASE_DIR / 'logs'
LOGS_DIR.mkdir(exist_ok=True)

SECRET_KEY = config('SECRET_KEY', default='django-insecure-change-in-production')

DEBUG = config('DEBUG', default=True, cast=bool)

allowed_hosts_env = config('ALLOWED_HOSTS', default=None)
if allowed_hosts_env:
    ALLOWED_HOSTS = [host.strip() for host in allowed_hosts_env.split(',')]
elif not DEBUG:
    ALLOWED_HOSTS = []
else:
    ALLOWED_HOSTS = ['localhost', '127.0.0.1', 'testserver']

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'rest_framework.authtoken',
    'corsheaders',
    'drf_spectacular',
    'apps.domain',
    'apps.application',
    'apps.infrastructure',
    'apps.presentation',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'signing_project.urls'

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

WSGI_APPLICATION = 'signing_project.wsgi.application'

# DATABASE_URL points at PostgreSQL in deployment; local runs fall back to SQLite
DATABASE_URL = config('DATABASE_URL', default=f'sqlite:///{BASE_DIR / "db.sqlite3"}')

DATABASES = {
    'default': dj_database_url.parse(DATABASE_URL, conn_max_age=600)
}

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.TokenAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
}

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in config('CORS_ALLOWED_ORIGINS', default='http://localhost:3000').split(',')
    if origin.strip()
]
CORS_ALLOW_CREDENTIALS = True

CORS_ALLOW_METHODS = [
    'DELETE',
    'GET',
    'OPTIONS',
    'PATCH',
    'POST',
    'PUT',
]
CORS_ALLOW_HEADERS = [
    'accept',
    'accept-encoding',
    'authorization',
    'content-type',
    'dnt',
    'origin',
    'user-agent',
    'x-csrftoken',
    'x-requested-with',
]
CORS_PREFLIGHT_MAX_AGE = 86400

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'file': {
            'level': 'INFO',
            'class': 'logging.FileHandler',
            'filename': BASE_DIR / 'logs' / 'django.log',
            'formatter': 'verbose',
        },
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console', 'file'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console', 'file'],
            'level': config('APPS_LOG_LEVEL', default='DEBUG'),
            'propagate': False,
        },
    },
}

# Signing workflow
SIGNING_PUBLIC_BASE_URL = config('SIGNING_PUBLIC_BASE_URL', default='http://localhost:3000/sign')
SIGNING_RUN_IN_BACKGROUND = config('SIGNING_RUN_IN_BACKGROUND', default=True, cast=bool)
SIGNING_MAX_TEXT_LENGTH = config('SIGNING_MAX_TEXT_LENGTH', default=2000, cast=int)
SIGNING_MAX_SIGNATURE_LENGTH = config('SIGNING_MAX_SIGNATURE_LENGTH', default=2_500_000, cast=int)
SIGNING_MAX_PDF_BYTES = config('SIGNING_MAX_PDF_BYTES', default=20 * 1024 * 1024, cast=int)

FINALIZER_MAX_RETRIES = config('FINALIZER_MAX_RETRIES', default=5, cast=int)
FINALIZER_RETRY_DELAY = config('FINALIZER_RETRY_DELAY', default=1.0, cast=float)
FINALIZER_STALE_AFTER_MINUTES = config('FINALIZER_STALE_AFTER_MINUTES', default=15, cast=int)

# External collaborators
COLLABORATOR_TIMEOUT = config('COLLABORATOR_TIMEOUT', default=30, cast=int)

FILE_STORAGE_BACKEND = config('FILE_STORAGE_BACKEND', default='http')
FILE_STORAGE_BASE_URL = config('FILE_STORAGE_BASE_URL', default='http://localhost:8080')
FILE_STORAGE_API_TOKEN = config('FILE_STORAGE_API_TOKEN', default='')

NOTIFICATION_BACKEND = config('NOTIFICATION_BACKEND', default='log')
NOTIFICATION_WEBHOOK_URL = config('NOTIFICATION_WEBHOOK_URL', default='')
NOTIFICATION_API_TOKEN = config('NOTIFICATION_API_TOKEN', default='')

# Swagger/OpenAPI Configuration
SPECTACULAR_SETTINGS = {
    'TITLE': 'Contract Signing API',
    'DESCRIPTION': '''
    Envelope-based e-signature workflow for contract documents.

    ## Main features

    - **Envelopes**: a contract PDF plus the parties that must sign it
    - **Recipients**: ordered signers; equal signing order means parallel signers
    - **Fields**: typed, positioned placeholders each recipient must fill
    - **Signing**: public token links and authenticated session signing
    - **Completion**: the signed PDF is flattened and published as a new file version

    ## Authentication

    Owner endpoints use token authentication:

    1. POST `/api/api-token-auth/` with `username` and `password`
    2. Send the header `Authorization: Token <token>`

    Public signing endpoints under `/api/signing/{token}/` need no credentials;
    the recipient token is the capability.
    ''',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
    'TAGS': [
        {'name': 'Authentication', 'description': 'Token login'},
        {'name': 'Envelopes', 'description': 'Envelope preparation and lifecycle for the sender'},
        {'name': 'Signing', 'description': 'Recipient signing operations'},
        {'name': 'Health', 'description': 'API health checks'},
    ],
    'SCHEMA_PATH_PREFIX': '/api/',
    'COMPONENT_SPLIT_REQUEST': True,
    'COMPONENT_NO_READ_ONLY_REQUIRED': True,
    'SWAGGER_UI_SETTINGS': {
        'deepLinking': True,
        'displayRequestDuration': True,
        'docExpansion': 'list',
        'filter': True,
    },
}
