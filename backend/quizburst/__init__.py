from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy.exc import OperationalError
import logging
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')), logging.INFO))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=flask_app.config.get('CORS_ORIGINS', []))

    # Import and register blueprints here
    from quizburst.main import main
    flask_app.register_blueprint(main, url_prefix='/api')

    from quizburst.api.quizzes import quizzes
    flask_app.register_blueprint(quizzes, url_prefix='/api/quizzes')

    from quizburst.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    from quizburst.api.history import history
    flask_app.register_blueprint(history, url_prefix='/api/me')

    _register_error_handlers(flask_app)

    # Flask-Login user loader
    from quizburst.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required', 'code': 'auth_error'}), 401

    from quizburst.cli import register_commands
    register_commands(flask_app)

    return flask_app


def _register_error_handlers(flask_app):
    from quizburst.services.sessions.errors import SessionError

    @flask_app.errorhandler(SessionError)
    def handle_session_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(OperationalError)
    def handle_storage_down(exc):
        # Refuse the mutation outright; the client resynchronizes and retries
        db.session.rollback()
        flask_app.logger.error(f"[storage-down] {exc.__class__.__name__}: {exc.orig}")
        return jsonify({'error': 'Storage unavailable, try again shortly', 'code': 'storage_unavailable'}), 503

    @flask_app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({'error': 'Not found', 'code': 'not_found'}), 404
