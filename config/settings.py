import os
from pathlib import Path
from decouple import config, Csv


# BASE DIRECTORY
# BASE_DIR points to the project root (where manage.py is)
BASE_DIR = Path(__file__).resolve().parent.parent


# SECURITY SETTINGS

# SECURITY WARNING: keep the secret key used in production secret!
# Generate new key: python -c 'from django.core.management.utils import get_random_secret_key; print(get_random_secret_key())'
SECRET_KEY = config('SECRET_KEY', default='django-insecure-CHANGE-THIS-IN-PRODUCTION')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config('DEBUG', default=True, cast=bool)

# Format: 'domain.com,www.domain.com,api.domain.com'
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1,0.0.0.0,testserver', cast=Csv())


# INSTALLED APPS

INSTALLED_APPS = [
    # Django built-in apps
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third-party apps
    'rest_framework',  # Django REST Framework (API)
    'corsheaders',  # CORS headers support
    'taggit',  # Tags for categorizing leads

    # Our custom apps
    # IMPORTANT: accounts must be first (custom user model)
    'apps.accounts',  # Users, roles & permission sync
    'apps.core',  # Teams, tenancy, feature flags, settings
    'apps.crm',  # Companies, people, accounts, opportunities, orders, tasks, notes
    'apps.leads',  # Lead management
    'apps.localization',  # Translation store & checker
]


# MIDDLEWARE

# Each request passes through these in order (top to bottom)
# Each response passes through in reverse order (bottom to top)
MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',  # must be before CommonMiddleware
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    # Must come after AuthenticationMiddleware (needs request.user)
    'apps.core.middleware.CurrentTeamMiddleware',
]


# URL CONFIGURATION

ROOT_URLCONF = 'config.urls'


# TEMPLATES
# Only the admin and DRF browsable API render templates
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


# ASGI/WSGI APPLICATION

ASGI_APPLICATION = 'config.asgi.application'
WSGI_APPLICATION = 'config.wsgi.application'


# DATABASE

# SQLite by default (local development and the test-suite)
# Production: DB_ENGINE=django.db.backends.postgresql plus the DB_* variables
DB_ENGINE = config('DB_ENGINE', default='django.db.backends.sqlite3')

if DB_ENGINE == 'django.db.backends.sqlite3':
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': config('DB_NAME', default=str(BASE_DIR / 'db.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': config('DB_NAME', default='teamcrm_db'),
            'USER': config('DB_USER', default='teamcrm_user'),
            'PASSWORD': config('DB_PASSWORD', default='teamcrm_pass'),
            'HOST': config('DB_HOST', default='db'),  # 'db' is Docker service name
            'PORT': config('DB_PORT', default='5432'),
            'CONN_MAX_AGE': 600,  # Keep connection open for 10 minutes
            'OPTIONS': {
                'connect_timeout': 10,
            }
        }
    }


# CACHE
# Used by the settings service, the translation checker and round-robin assignment
CACHES = {
    'default': {
        'BACKEND': config('CACHE_BACKEND', default='django.core.cache.backends.locmem.LocMemCache'),
        'LOCATION': config('CACHE_LOCATION', default='teamcrm'),
    }
}


# AUTHENTICATION

# IMPORTANT: This MUST be set before first migration!
AUTH_USER_MODEL = 'accounts.User'

# Django's model permissions (and session login) first, then team-scoped role permissions
AUTHENTICATION_BACKENDS = [
    'django.contrib.auth.backends.ModelBackend',
    'apps.accounts.backends.TeamPermissionBackend',  # team roles (resource.action)
]

LOGIN_URL = '/admin/login/'


# INTERNATIONALIZATION

LANGUAGE_CODE = 'en'

LANGUAGES = [
    ('en', 'English'),
    ('fr', 'French'),
    ('de', 'German'),
    ('ar', 'Arabic'),
]

TIME_ZONE = config('TIME_ZONE', default='UTC')

USE_I18N = True

# All datetimes in database are stored in UTC
USE_TZ = True


# STATIC & MEDIA FILES

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

MEDIA_URL = '/media/'
MEDIA_ROOT = BASE_DIR / 'media'


# DJANGO REST FRAMEWORK (API)

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 25,
    'DATETIME_FORMAT': '%Y-%m-%d %H:%M:%S',
}


# CORS HEADERS

if DEBUG:
    CORS_ALLOW_ALL_ORIGINS = True
else:
    CORS_ALLOWED_ORIGINS = config('CORS_ALLOWED_ORIGINS', default='', cast=Csv())


# CELERY (Background Tasks)

CELERY_BROKER_URL = config('REDIS_URL', default='redis://redis:6379/0')
CELERY_RESULT_BACKEND = config('REDIS_URL', default='redis://redis:6379/0')

CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE

# Run tasks inline (tests, local development without a worker)
CELERY_TASK_ALWAYS_EAGER = config('CELERY_TASK_ALWAYS_EAGER', default=False, cast=bool)

CELERY_TASK_TIME_LIMIT = 5 * 60
CELERY_TASK_SOFT_TIME_LIMIT = 4 * 60


# EMAIL CONFIGURATION

EMAIL_BACKEND = config(
    'EMAIL_BACKEND',
    default='django.core.mail.backends.console.EmailBackend'
)
DEFAULT_FROM_EMAIL = config('DEFAULT_FROM_EMAIL', default='TeamCRM <noreply@teamcrm.local>')


# LOGGING

LOG_DIR = BASE_DIR / 'logs'
os.makedirs(LOG_DIR, exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,

    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
    },

    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': LOG_DIR / 'django.log',
            'maxBytes': 1024 * 1024 * 10,  # 10 MB
            'backupCount': 5,
            'formatter': 'verbose',
        },
    },

    'loggers': {
        'django': {
            'handlers': ['console', 'file'],
            'level': config('LOG_LEVEL', default='INFO'),
            'propagate': True,
        },
        'apps': {
            'handlers': ['console', 'file'],
            'level': config('APPS_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
    },
}


# CRM SETTINGS

# Read through apps.core.crm_config.CrmConfig, validated by apps.core.checks
CRM = {
    'features': {
        'companies': config('CRM_FEATURE_COMPANIES', default=True, cast=bool),
        'people': config('CRM_FEATURE_PEOPLE', default=True, cast=bool),
        'opportunities': config('CRM_FEATURE_OPPORTUNITIES', default=True, cast=bool),
        'orders': config('CRM_FEATURE_ORDERS', default=True, cast=bool),
        'tasks': config('CRM_FEATURE_TASKS', default=True, cast=bool),
        'notes': config('CRM_FEATURE_NOTES', default=True, cast=bool),
        'leads': config('CRM_FEATURE_LEADS', default=True, cast=bool),
        'web_leads': config('CRM_FEATURE_WEB_LEADS', default=True, cast=bool),
        'favicon_fetching': config('CRM_FEATURE_FAVICON_FETCHING', default=True, cast=bool),
        'activity_log': config('CRM_FEATURE_ACTIVITY_LOG', default=True, cast=bool),
    },
    'owner': {
        'auto_assign_on_create': config('CRM_AUTO_ASSIGN_OWNER', default=True, cast=bool),
    },
    'leads': {
        'default_status': 'new',
        'default_source': 'website',
        'auto_assign_enabled': config('CRM_LEADS_AUTO_ASSIGN', default=True, cast=bool),
        'auto_assign_method': config('CRM_LEADS_AUTO_ASSIGN_METHOD', default='round_robin'),
    },
    'opportunities': {
        'default_stage': 'prospecting',
        'default_probability': 10,
        'require_close_reason': True,
    },
    'tasks': {
        'default_priority': 'medium',
        'default_status': 'pending',
        'reminder_before_due': 24,  # hours
    },
    'currency': {
        'default': config('CRM_DEFAULT_CURRENCY', default='USD'),
        'symbol': config('CRM_CURRENCY_SYMBOL', default='$'),
    },
    'ui': {
        'brand_name': config('CRM_BRAND_NAME', default='TeamCRM'),
        'items_per_page': config('CRM_ITEMS_PER_PAGE', default=25, cast=int),
        'default_theme_mode': config('CRM_DEFAULT_THEME_MODE', default='light'),  # light, dark, system
    },
    'cache': {
        'enabled': True,
        'ttl': config('CRM_CACHE_TTL', default=3600, cast=int),
    },
    'favicons': {
        'timeout': 5,  # seconds
    },
}


# PERMISSION DEFINITIONS

# Synced into every team by apps.accounts.permissions.PermissionService
_CRUD = ['view', 'create', 'update', 'delete', 'restore', 'force-delete']

PERMISSION_DEFAULTS = {
    'guard': 'web',
    'super_admin_roles': ['admin'],
    'resources': {
        'accounts': _CRUD,
        'companies': _CRUD,
        'people': _CRUD,
        'leads': _CRUD,
        'opportunities': _CRUD,
        'orders': _CRUD,
        'notes': _CRUD,
        'tasks': _CRUD,
        'teams': ['view', 'manage-members', 'manage-roles', 'manage-permissions'],
        'settings': ['manage'],
    },
    'custom_permissions': [
        'feature-flags.manage',
    ],
    'permission_sets': {
        'billing': [
            'orders.view',
            'orders.create',
            'orders.update',
            'orders.delete',
        ],
        'sales': [
            'leads.*',
            'opportunities.*',
            'accounts.view',
            'companies.view',
            'people.view',
            'notes.create',
            'notes.view',
        ],
    },
    'roles': {
        'admin': {
            'label': 'Administrator',
            'description': 'Full access to tenant data, billing, and settings.',
            'permissions': ['*'],
        },
        'editor': {
            'label': 'Editor',
            'description': 'Create and update CRM records.',
            'permissions': [
                'accounts.*',
                'companies.*',
                'people.*',
                'leads.*',
                'opportunities.*',
                'tasks.*',
                'notes.*',
            ],
            'inherits': ['user'],
        },
        'user': {
            'label': 'User',
            'description': 'Read-only access to core CRM data.',
            'permissions': [
                'accounts.view',
                'companies.view',
                'people.view',
                'leads.view',
                'opportunities.view',
                'orders.view',
                'tasks.view',
                'notes.view',
            ],
        },
        'billing': {
            'label': 'Billing',
            'description': 'Manage orders and payment records.',
            'permission_sets': ['billing'],
            'inherits': ['user'],
        },
        'sales': {
            'label': 'Sales',
            'description': 'Work the pipeline: leads and opportunities.',
            'permission_sets': ['sales'],
            'inherits': ['user'],
        },
    },
    'team_role_map': {
        'owner': 'admin',
        'admin': 'admin',
        'editor': 'editor',
        'member': 'user',
    },
}


# TRANSLATIONS

TRANSLATIONS = {
    'source_language': 'en',
    'cache_ttl': config('TRANSLATIONS_CACHE_TTL', default=3600, cast=int),
}


# CUSTOM SETTINGS

SESSION_COOKIE_AGE = 86400  # 24 hours in seconds
SESSION_SAVE_EVERY_REQUEST = False


# SECURITY SETTINGS (Production)

if not DEBUG:
    SECURE_SSL_REDIRECT = True
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = 'DENY'
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True


# DEFAULT AUTO FIELD

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
