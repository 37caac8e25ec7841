"""Application factory and extension initialization for BonusFlow."""
from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

from config import config_by_name

# Global extension instances -------------------------------------------------

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()


def create_app(config_name: Optional[str] = None) -> Flask:
    """Flask application factory."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    config_name = config_name or os.getenv("FLASK_CONFIG", "development")
    config_class = config_by_name.get(config_name.lower())
    if config_class is None:
        raise ValueError(f"Unknown Flask configuration '{config_name}'")

    app.config.from_object(config_class)
    logging.getLogger("bonusflow").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Ensure instance folder exists for SQLite DBs
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)

    # Register blueprints
    from bonusflow.auth import auth_bp
    from bonusflow.branches import branches_bp
    from bonusflow.employees import employees_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(branches_bp)
    app.register_blueprint(employees_bp)

    from bonusflow.errors import register_error_handlers
    register_error_handlers(app)

    # User loader for Flask-Login
    from bonusflow.models import Employee
    from bonusflow.utils.helpers import json_response

    @login_manager.user_loader
    def load_user(user_id: str) -> Optional[Employee]:
        employee = db.session.get(Employee, int(user_id))
        if employee is None or not employee.is_active:
            return None
        return employee

    @login_manager.unauthorized_handler
    def unauthorized():
        return json_response({"error": "Authentication required.", "code": "NOT_AUTHORIZED"}, status=401)

    @app.shell_context_processor
    def shell_context():
        return {"db": db, "Employee": Employee}

    return app
