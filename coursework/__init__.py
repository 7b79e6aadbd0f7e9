import os
import logging
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    load_dotenv()
    app = Flask(__name__)

    # 1. Secret Key (Security)
    app.secret_key = os.environ.get('SECRET_KEY', 'dev_secret_key_fallback')

    # 2. Database Configuration
    # Prioritize 'DATABASE_URL' from environment (Docker/Render)
    # Fallback to local SQLite if no URL is found
    database_url = os.environ.get('DATABASE_URL')

    if database_url:
        # SQLAlchemy requires 'postgresql://' instead of 'postgres://' (common in Render)
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    else:
        app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///coursework.db'

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # 3. AI Grader
    app.config['GROQ_API_KEY'] = os.environ.get('GROQ_API_KEY')
    app.config['AI_GRADER_MODEL'] = os.environ.get('AI_GRADER_MODEL', 'llama-3.3-70b-versatile')
    app.config['AI_GRADER_TIMEOUT'] = float(os.environ.get('AI_GRADER_TIMEOUT', 30))

    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(level=app.config['LOG_LEVEL'])

    # 4. Initialize Plugins
    db.init_app(app)
    migrate.init_app(app, db)

    # 5. Register Blueprints (Routes)
    from coursework.routes import routes
    app.register_blueprint(routes)

    register_error_handlers(app)

    # 6. Create Database Tables (if they don't exist)
    with app.app_context():
        db.create_all()

    return app


def register_error_handlers(app):
    from coursework.errors import ApiError

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        return jsonify({"error": error.message}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"error": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        logger.exception("Unhandled error: %s", error)
        return jsonify({"error": "Internal server error"}), 500
