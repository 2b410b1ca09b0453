"""Base Django settings for tests."""

SECRET_KEY = "django_tests_secret_key"

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    },
}

USE_TZ = False

# Servers are replaced by fakeredis in the test fixtures; no server needs to listen here.
CACHES = {
    "default": {
        "BACKEND": "django_redis_storage.cache.RedisCache",
        "LOCATION": "redis://127.0.0.1:6379/1",
    },
    "with_namespace": {
        "BACKEND": "django_redis_storage.cache.RedisCache",
        "LOCATION": "redis://127.0.0.1:6379/1",
        "OPTIONS": {"namespace": "app"},
        "KEY_PREFIX": "test-prefix",
    },
}

# Named cluster configurations for ClusterStorageOptions(name=...).
REDIS_STORAGE_CLUSTERS = {
    "main": {
        "seeds": ["10.0.0.1:7000", "10.0.0.2:7000"],
        "timeout": 3,
        "read_timeout": 4,
        "auth": ["cluster-user", "cluster-pass"],
    },
    "seedless": {
        "timeout": 1,
    },
}
