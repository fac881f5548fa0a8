"""
Application configuration.

This module defines the configuration settings for the Flask application: database connection, secret key,
logging level and the pricing engine defaults. It uses environment variables for sensitive information and
defaults for development. In production, make sure to set the appropriate environment variables and secure the
secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'jewelstore.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for mutating requests (clients send X-CSRFToken)
    WTF_CSRF_ENABLED = True

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Store name (used in API responses)
    APP_NAME = "Jewelstore"

    # Pricing engine
    DEFAULT_GST_PERCENTAGE = os.environ.get("DEFAULT_GST_PERCENTAGE", "3")
    PRICE_RECALC_BATCH_SIZE = int(os.environ.get("PRICE_RECALC_BATCH_SIZE", "100"))
    PRICE_RECALC_MAX_FAILURES = 20
    PRICE_RECALC_MAX_CHANGES = 50

    # Storefront listing
    PRODUCTS_PER_PAGE = 20
    PRODUCTS_MAX_PER_PAGE = 100


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "DEBUG"
    PRICE_RECALC_BATCH_SIZE = 100
