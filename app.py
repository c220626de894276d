import os
import logging
from logging.handlers import RotatingFileHandler

import click
from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from extensions import db, init_extensions
from ledger.exceptions import LedgerError
from logger import LOG_FORMAT


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # ------------------------------------------------------------------------------------------
    # LOGGING
    # ------------------------------------------------------------------------------------------
    setup_logging(app)

    # ----------------------------------------------------------------------------------------------------------------------------------
    # DATABASE URI Fix
    # --------------------------------------------------------------------------------------------------------------------------------------------
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///"):
        os.makedirs(os.path.dirname(database_uri[len("sqlite:///"):]) or ".", exist_ok=True)

    # --------------------------------------------------------------------------------------------------------------------------
    # Initialize extensions
    # ----------------------------------------------------------------------------------------------------------------------------
    init_extensions(app)

    # request_loader registration happens on import
    import blueprints.security  # noqa: F401

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    @app.route("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    return app


def setup_logging(app):
    """File logging for the app logger, plus the console while debugging"""
    logs_dir = app.config.get("LOG_DIR", "logs")
    os.makedirs(logs_dir, exist_ok=True)

    file_handler = RotatingFileHandler(os.path.join(logs_dir, "app.log"), maxBytes=10240, backupCount=10,
                                       encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(logging.INFO)

    app.logger.handlers.clear()
    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
    app.logger.propagate = False  # Prevent duplicate logs

    if app.debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        app.logger.addHandler(console_handler)


def register_blueprints(app):
    from blueprints.auth import bp as auth_bp
    from blueprints.captcha import bp as captcha_bp
    from blueprints.user import bp as user_bp
    from blueprints.users import bp as users_bp
    from blueprints.orders import bp as orders_bp
    from blueprints.commission_rate import bp as commission_rate_bp
    from blueprints.injection_plans import bp as injection_plans_bp
    from blueprints.recharges import bp as recharges_bp
    from blueprints.withdraws import bp as withdraws_bp
    from blueprints.sub_users import bp as sub_users_bp
    from blueprints.support import bp as support_bp
    from blueprints.products import bp as products_bp
    from blueprints.platform_config import bp as platform_config_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(captcha_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(commission_rate_bp)
    app.register_blueprint(injection_plans_bp)
    app.register_blueprint(recharges_bp)
    app.register_blueprint(withdraws_bp)
    app.register_blueprint(sub_users_bp)
    app.register_blueprint(support_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(platform_config_bp)


def register_error_handlers(app):

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{error.__class__.__name__}: {error.message}")
        else:
            app.logger.info(f"{error.__class__.__name__}: {error.message}")
        return jsonify({"message": error.message}), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        app.logger.error(f"Database error: {error}", exc_info=True)
        return jsonify({"message": "Internal server error"}), 500


def register_commands(app):

    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        import models  # noqa: F401
        db.create_all()
        click.echo("Database tables created")


# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    app.run(debug=app.config.get("DEBUG", False), host="0.0.0.0", port=port)
