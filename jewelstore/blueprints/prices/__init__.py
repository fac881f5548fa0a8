"""
Prices blueprint package.

Exposes the Blueprint object imported in jewelstore.create_app().
The routes live in routes.py.
"""

from .routes import prices_bp  # noqa: F401
