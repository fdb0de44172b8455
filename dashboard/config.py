"""Dashboard configuration."""

import os

from reportability_src.config import Config as EngineConfig


class Config:
    """Base configuration."""

    # Flask
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-change-in-production")
    DEBUG = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    TESTING = False

    # Dashboard
    DASHBOARD_API_KEY = os.environ.get("DASHBOARD_API_KEY", "")

    # Reportability rule catalog (loaded once at startup)
    REPORTABILITY_RULES_DIR = EngineConfig.RULES_DIR
    REPORTABILITY_RULES_JSON = EngineConfig.RULES_JSON_PATH


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


class TestingConfig(Config):
    """Test configuration (no API key, no rules source)."""
    TESTING = True
    DASHBOARD_API_KEY = ""
    REPORTABILITY_RULES_DIR = None
    REPORTABILITY_RULES_JSON = None


def get_config():
    """Get configuration based on environment."""
    env = os.environ.get("FLASK_ENV", "development")
    if env == "production":
        return ProductionConfig()
    return DevelopmentConfig()
