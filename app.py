"""
Main Flask Application
"""
import os
import logging
from flask import Flask, request
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from config import config
from models import db
from errors import register_error_handlers
from token_service import TokenService
from notification_service import Notifier
from auth_service import load_current_user
from routes import auth_bp, patient_bp, records_bp, profile_access_bp, logs_bp, health_bp
from seed_database import register_commands


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def log_request():
    logger.info(f"Incoming request {request.method} {request.full_path.rstrip('?')}")


def create_app(config_name=None):
    """Application factory"""

    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config.get(config_name, config['default']))

    # Client IP comes from the first proxy hop
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

    # Signing key must be present before any request is served
    app.extensions['token_service'] = TokenService.from_config(app.config)
    app.extensions['notifier'] = Notifier.from_config(app.config)

    # Initialize extensions
    db.init_app(app)

    # Configure CORS
    cors_origins = app.config.get('CORS_ORIGINS', ['http://localhost:5173'])
    CORS(app, resources={r"/api/*": {"origins": cors_origins}}, supports_credentials=True)

    app.before_request(log_request)
    app.before_request(load_current_user)
    register_error_handlers(app)

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(patient_bp)
    app.register_blueprint(records_bp)
    app.register_blueprint(profile_access_bp)
    app.register_blueprint(logs_bp)
    app.register_blueprint(health_bp)

    register_commands(app)

    # Create database tables
    with app.app_context():
        db.create_all()
        logger.info("Database tables created/verified")

    logger.info(f"Health-Lock service initialized in {config_name} mode")

    return app


def main():
    """Main entry point"""
    app = create_app()

    if os.getenv('FLASK_ENV') == 'production':
        app.run(
            host='0.0.0.0',
            port=int(os.getenv('FLASK_RUN_PORT', 5000)),
            debug=False
        )
    else:
        app.run(
            host='0.0.0.0',
            port=int(os.getenv('FLASK_RUN_PORT', 5000)),
            debug=True
        )


if __name__ == '__main__':
    main()
