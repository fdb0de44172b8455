"""Flask application factory for the Reportability API."""

import logging
import os

from flask import Flask

from reportability_src.rules import (
    Catalog,
    ReportabilityEvaluator,
    load_catalog_from_csv,
    load_catalog_from_json,
)

from .config import get_config

logger = logging.getLogger(__name__)


def _load_catalog(app: Flask) -> Catalog:
    """Build the rule catalog once from the configured source."""
    rules_json = app.config.get("REPORTABILITY_RULES_JSON")
    rules_dir = app.config.get("REPORTABILITY_RULES_DIR")
    if rules_json:
        return load_catalog_from_json(rules_json)
    if rules_dir:
        return load_catalog_from_csv(rules_dir)
    logger.warning("No reportability rules source configured; using an empty catalog")
    return Catalog()


def create_app(config=None, catalog: Catalog | None = None):
    """Create and configure the Flask application.

    Args:
        config: Optional configuration object or dict
        catalog: Optional prebuilt rule catalog (skips loading from config)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Load configuration
    if config is None:
        config = get_config()

    if isinstance(config, dict):
        app.config.update(config)
    else:
        app.config.from_object(config)

    # The catalog is read-only after this point and shared by every request
    if catalog is None:
        catalog = _load_catalog(app)
    app.catalog = catalog
    app.evaluator = ReportabilityEvaluator(catalog)

    # Register blueprints
    from .routes.api import api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    return app


def run_dev_server():
    """Run development server."""
    app = create_app()
    app.run(
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 5000)),
        debug=True,
    )


if __name__ == "__main__":
    run_dev_server()
