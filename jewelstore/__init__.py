"""
jewelstore/__init__.py

Flask application factory for the Jewelstore catalog and pricing API.

Requirements:
- JSON API only; all permissions are enforced server-side.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- Product prices are derived (see calculator.py) and refreshed in bulk by
  recalculation.py after material rate changes.
"""

from __future__ import annotations

import json
import logging

import click
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException

from .errors import PricingReferenceError, ValidationError
from .extensions import csrf, db, login_manager, migrate
from .models import Admin

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("jewelstore").setLevel(app.config.get("LOG_LEVEL", "INFO"))


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        body = {"error": exc.message}
        if exc.field:
            body["field"] = exc.field
        return jsonify(body), 400

    @app.errorhandler(PricingReferenceError)
    def handle_reference_error(exc: PricingReferenceError):
        return jsonify({"error": str(exc)}), 422

    @app.errorhandler(CSRFError)
    def handle_csrf_error(exc: CSRFError):
        return jsonify({"error": exc.description}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.description}), exc.code


def _register_cli(app: Flask) -> None:
    @app.cli.command("seed-catalog")
    def seed_catalog_command():
        """Seed default metals, gemstones and categories."""
        from .seed import seed_catalog

        created = seed_catalog()
        click.echo(
            f"Catalog seeded: {created['metals']} metals, "
            f"{created['gemstones']} gemstones, {created['categories']} categories."
        )

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("name")
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin_command(email: str, name: str, password: str):
        """Create an admin account."""
        email = email.strip().lower()
        if Admin.query.filter_by(email=email).first():
            raise click.ClickException(f"Admin {email} already exists.")
        admin = Admin(email=email, name=name.strip())
        admin.set_password(password)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"Admin {email} created.")

    @app.cli.command("recalculate-prices")
    @click.option("--apply", "apply_changes", is_flag=True, help="Write changed prices (default is a dry run).")
    def recalculate_prices_command(apply_changes: bool):
        """Re-price every product against current material rates and print the summary."""
        from .catalog import SqlCatalogStore
        from .recalculation import PriceRecalculator

        recalculator = PriceRecalculator.from_config(app.config, SqlCatalogStore())
        summary = recalculator.recalculate_all(dry_run=not apply_changes)
        click.echo(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> Admin | None:
        """Load admin for Flask-Login."""
        try:
            admin = db.session.get(Admin, int(user_id))
        except (TypeError, ValueError):
            return None
        return admin if admin and admin.is_active else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401

    _register_error_handlers(app)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.catalog import catalog_bp
    from .blueprints.prices import prices_bp
    from .blueprints.products import products_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(prices_bp)

    _register_cli(app)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "app": app.config.get("APP_NAME", "Jewelstore")})

    logger.debug("Application created with %s", config_object)
    return app
