import atexit
import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS

from config import Config
from extensions import db, migrate, jwt, mail
from payments.errors import PaymentError
from utils.logging import configure_logging

# Models (registered on the metadata for create_all / migrations)
from users.models import User  # noqa: F401
from payments.models import PaymentRecord  # noqa: F401
from notifications.models import Notification  # noqa: F401

# Blueprints
from users.routes import auth_bp, users_bp
from payments.routes import payments_bp
from payments.cli import payments_cli
from notifications.routes import notifications_bp

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_JSON", False))

    CORS(app)

    # ✅ Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    # ✅ Register Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(notifications_bp)
    app.cli.add_command(payments_cli)

    register_jwt_handlers()
    register_error_handlers(app)

    if app.config.get("PAYMENT_SCHEDULER_ENABLED"):
        start_scheduler(app)

    return app


def start_scheduler(app):
    # ⚠️ Skip CLI commands (db migrate, shell, ...) and the reloader's parent process
    if os.environ.get("FLASK_RUN_FROM_CLI") == "true" and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        return None

    from payments.scheduler import PaymentScheduler

    scheduler = PaymentScheduler(app)
    scheduler.start()
    app.extensions["payment_scheduler"] = scheduler
    atexit.register(scheduler.stop)
    return scheduler


def register_jwt_handlers():
    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({"error": "No token provided. Authentication required."}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({"error": "Invalid or expired token."}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({"error": "Invalid or expired token."}), 401


def register_error_handlers(app):
    @app.errorhandler(PaymentError)
    def payment_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", type(error).__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Route not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error"}), 500


if __name__ == '__main__':
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=True)
