"""
Tally – Django Settings (Infrastructure Only)
==============================================
Django hosts the redemption ledger. The promotion engine itself is
framework-free and reads only TALLY_PRICING from here.
"""

import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get("TALLY_SECRET_KEY", "tally-dev-key-replace-before-deployment")

DEBUG = os.environ.get("TALLY_DEBUG", "1") == "1"

ALLOWED_HOSTS = []

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    # ── Tally Modules ─────────────────────────────────────
    "adapters.ledger_store",
]

# ── Database ──────────────────────────────────────────────────
# SQLite for development. Production DB configured separately.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("TALLY_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Pricing ───────────────────────────────────────────────────
# Read by core.config.pricing.pricing_config_from_settings().
TALLY_PRICING = {
    "rounding_quantum": "0.01",
    "default_priority": 100,
    "default_timezone": os.environ.get("TALLY_TIMEZONE", "UTC"),
}

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "console": {"class": "logging.StreamHandler"},
    },
    "loggers": {
        "tally": {"handlers": ["console"], "level": os.environ.get("TALLY_LOG_LEVEL", "WARNING")},
    },
}
