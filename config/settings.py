"""
Django settings for the release pipeline project.

Everything operational is read from the environment (see config/env.py for
dotenv loading). Pipeline secrets are NOT settings: they are resolved per
stage by apps.toolchain.secret_store and never stored here.
"""

from __future__ import annotations

import os
from pathlib import Path

from config.env import env_bool, env_list, load_env

BASE_DIR = Path(__file__).resolve().parent.parent

load_env(BASE_DIR)

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = env_bool("DJANGO_DEBUG", default=False)
ALLOWED_HOSTS = env_list("DJANGO_ALLOWED_HOSTS", ["localhost", "127.0.0.1", "testserver"])

INSTALLED_APPS = [
    "config.apps.PipelineAdminConfig",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_object_actions",
    "django_json_widget",
    "apps.orchestration",
    "apps.artifacts",
    "apps.triggers",
    "apps.toolchain",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# The pipeline's own bookkeeping database. DATABASE_URL is reserved for the
# application under test and is handed to stages as a secret.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("PIPELINE_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# --- Logging ---
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "apps": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

# --- Celery ---
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", default=False)
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]

# --- Orchestration / monitoring ---
ORCHESTRATION_METRICS_BACKEND = os.environ.get("ORCHESTRATION_METRICS_BACKEND", "logging")
STATSD_HOST = os.environ.get("STATSD_HOST", "localhost")
STATSD_PORT = int(os.environ.get("STATSD_PORT", "8125"))
STATSD_PREFIX = os.environ.get("STATSD_PREFIX", "pipeline")

# --- Triggers ---
PIPELINE_TRIGGER_EVENTS = env_list("PIPELINE_TRIGGER_EVENTS", ["push", "pull_request"])
PIPELINE_TRIGGER_BRANCHES = env_list("PIPELINE_TRIGGER_BRANCHES", ["main"])
PIPELINE_TRIGGER_PATHS_IGNORE = env_list("PIPELINE_TRIGGER_PATHS_IGNORE", ["README.md"])
GITHUB_WEBHOOK_SECRET = os.environ.get("GITHUB_WEBHOOK_SECRET", "")
# Used to list the files a pull request touches.
GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN", "")
GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com")
GITHUB_API_TIMEOUT = int(os.environ.get("GITHUB_API_TIMEOUT", "10"))

# --- Source checkout & workspaces ---
PIPELINE_SOURCE_REPOSITORY = os.environ.get("PIPELINE_SOURCE_REPOSITORY", "")
PIPELINE_WORKSPACE_ROOT = os.environ.get(
    "PIPELINE_WORKSPACE_ROOT", str(BASE_DIR / "var" / "workspaces")
)
PIPELINE_ARTIFACT_ROOT = os.environ.get(
    "PIPELINE_ARTIFACT_ROOT", str(BASE_DIR / "var" / "artifacts")
)
PIPELINE_TOOLS_DIR = os.environ.get("PIPELINE_TOOLS_DIR", str(BASE_DIR / "var" / "tools"))
PIPELINE_COMMAND_TIMEOUT_SECONDS = float(
    os.environ.get("PIPELINE_COMMAND_TIMEOUT_SECONDS", "1800")
)

# --- Test stage ---
PIPELINE_PYTHON = os.environ.get("PIPELINE_PYTHON", "python3")
PIPELINE_TEST_USE_VENV = env_bool("PIPELINE_TEST_USE_VENV", default=True)
PIPELINE_REQUIREMENTS_FILE = os.environ.get("PIPELINE_REQUIREMENTS_FILE", "requirements.txt")
PIPELINE_COVERAGE_TARGET = os.environ.get("PIPELINE_COVERAGE_TARGET", "api")
PIPELINE_COVERAGE_REPORT = os.environ.get("PIPELINE_COVERAGE_REPORT", "coverage.xml")

# --- Quality-scan stage ---
SONAR_ORGANIZATION = os.environ.get("SONAR_ORGANIZATION", "")
SONAR_PROJECT_KEY = os.environ.get("SONAR_PROJECT_KEY", "")
SONAR_SOURCES = os.environ.get("SONAR_SOURCES", "api")
SONAR_HOST_URL = os.environ.get("SONAR_HOST_URL", "https://sonarcloud.io")
SONAR_SCANNER_VERSION = os.environ.get("SONAR_SCANNER_VERSION", "7.0.2.4839")
SONAR_SCANNER_DOWNLOAD_URL = os.environ.get(
    "SONAR_SCANNER_DOWNLOAD_URL",
    "https://binaries.sonarsource.com/Distribution/sonar-scanner-cli/"
    "sonar-scanner-cli-{version}-linux-x64.zip",
)

# --- Provision stage ---
PIPELINE_TERRAFORM_DIR = os.environ.get("PIPELINE_TERRAFORM_DIR", "terraform")
PIPELINE_TERRAFORM_BINARY = os.environ.get("PIPELINE_TERRAFORM_BINARY", "terraform")

# --- Build / deploy stages ---
PIPELINE_DOCKER_BINARY = os.environ.get("PIPELINE_DOCKER_BINARY", "docker")
PIPELINE_IMAGE_NAME = os.environ.get("PIPELINE_IMAGE_NAME", "ledschallenge")
PIPELINE_IMAGE_TAG = os.environ.get("PIPELINE_IMAGE_TAG", "latest")
PIPELINE_DOCKERFILE = os.environ.get("PIPELINE_DOCKERFILE", "Dockerfile")
PIPELINE_BUILD_SECRET_NAME = os.environ.get("PIPELINE_BUILD_SECRET_NAME", "DATABASE_URL")
PIPELINE_BUILD_SECRET_MODE = os.environ.get("PIPELINE_BUILD_SECRET_MODE", "secret")
PIPELINE_REGISTRY = os.environ.get("PIPELINE_REGISTRY", "docker.io")
PIPELINE_IMMUTABLE_TAGS = env_bool("PIPELINE_IMMUTABLE_TAGS", default=True)
PIPELINE_AWS_VERIFY_IDENTITY = env_bool("PIPELINE_AWS_VERIFY_IDENTITY", default=False)

# --- Runs ---
PIPELINE_DEFAULT_BRANCH = os.environ.get("PIPELINE_DEFAULT_BRANCH", "main")
PIPELINE_ENVIRONMENT = os.environ.get("PIPELINE_ENVIRONMENT", "production")
PIPELINE_KEEP_WORKSPACES = env_bool("PIPELINE_KEEP_WORKSPACES", default=False)
