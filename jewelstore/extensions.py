"""
Flask extension singletons.

Kept apart from the factory to avoid circular imports (models and blueprints
import db from here). Everything is bound to the app in create_app().
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()

login_manager = LoginManager()
# Admin sessions are dropped if the client IP/user agent changes
login_manager.session_protection = "strong"
