# Standard Library Imports
import logging

# Third-party Library Imports
import click
from flask import Flask, current_app, jsonify
from pymongo.errors import DuplicateKeyError, PyMongoError
from werkzeug.exceptions import HTTPException

# Local Imports
import auth  # noqa: F401  registers the Flask-Login loaders
from ai_helpers import load_stop_words
from answer_routes import answers_bp
from assistant import EXTENSION_KEY as ASSISTANT_KEY, ChatAssistant, GenerativeTextClient
from auth_routes import auth_bp, hash_password
from chat_routes import chat_bp
from config import Config
from extensions import bcrypt, cors, login_manager, mongo, socketio
from models import AnonymousUser, Role, ensure_indexes, new_user_document
from notification_routes import notifications_bp
from notifications import EXTENSION_KEY as PUBLISHER_KEY, NotificationPublisher, register_socket_handlers
from question_routes import questions_bp
from user_routes import users_bp


def create_app(config_class=Config, mongo_client=None, generative_client=None, publisher=None):
    """Application factory.

    ``mongo_client``, ``generative_client`` and ``publisher`` replace the live
    MongoDB connection, the generative API client and the Socket.IO publisher
    (tests hand in in-memory doubles).
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    # --- 1. Extensions Initialization ---
    mongo.init_app(app, tz_aware=True)
    if mongo_client is not None:
        mongo.cx = mongo_client
        mongo.db = mongo_client[mongo.db.name]
    bcrypt.init_app(app)
    login_manager.init_app(app)
    login_manager.anonymous_user = AnonymousUser
    cors.init_app(app, resources={r'/api/*': {'origins': app.config['CORS_ORIGINS']}})
    socketio.init_app(app, cors_allowed_origins=app.config['CORS_ORIGINS'])
    register_socket_handlers(socketio)

    app.extensions[PUBLISHER_KEY] = publisher or NotificationPublisher(socketio)
    client = generative_client or GenerativeTextClient.from_config(app.config)
    app.extensions[ASSISTANT_KEY] = ChatAssistant(client)
    if not client.configured:
        app.logger.warning("GEMINI_API_KEY not set; chat assistant will use canned replies")

    load_stop_words(download=app.config['NLTK_DOWNLOAD'])

    # --- 2. Blueprints ---
    for blueprint in (auth_bp, users_bp, questions_bp, answers_bp, notifications_bp, chat_bp):
        app.register_blueprint(blueprint)

    register_error_handlers(app)
    register_commands(app)

    @app.route('/api/health')
    def health():
        try:
            mongo.cx.admin.command('ping')
            database = 'connected'
        except PyMongoError as e:
            app.logger.error(f"Health check database ping failed: {e}")
            database = 'unavailable'
        status = 200 if database == 'connected' else 503
        return jsonify({'status': 'ok' if status == 200 else 'degraded', 'database': database,
                        'assistant': 'configured' if client.configured else 'fallback'}), status

    return app


# --- Error Handlers ---
def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({'message': e.description}), e.code

    @app.errorhandler(DuplicateKeyError)
    def duplicate_key(e):
        fields = ', '.join((e.details or {}).get('keyValue', {}).keys()) or 'value'
        return jsonify({'message': f'Duplicate {fields}'}), 400

    @app.errorhandler(Exception)
    def internal_server_error(e):
        app.logger.error(f"Server Error: {e}", exc_info=True)
        return jsonify({'message': 'Server error', 'error': str(e)}), 500


# --- CLI ---
def register_commands(app):
    @app.cli.command('init-db')
    def init_db():
        """Create the MongoDB indexes."""
        ensure_indexes()
        click.echo('Indexes created.')

    @app.cli.command('create-admin')
    def create_admin():
        """Create the first admin account unless one exists."""
        existing = mongo.db.users.find_one({'role': Role.ADMIN.value})
        if existing:
            click.echo(f"Admin user already exists: {existing['username']}")
            return
        config = current_app.config
        user_doc = new_user_document(config['ADMIN_USERNAME'], config['ADMIN_EMAIL'],
                                     hash_password(config['ADMIN_PASSWORD']), role=Role.ADMIN, reputation=1000)
        mongo.db.users.insert_one(user_doc)
        current_app.logger.info("Admin user %s created", user_doc['username'])
        click.echo(f"Admin user created: {user_doc['username']} <{user_doc['email']}>")


# --- Main Execution ---
if __name__ == '__main__':
    logging.basicConfig(level=Config.LOG_LEVEL)
    app = create_app()
    app.logger.info("Starting PeerQ API...")
    socketio.run(app, debug=True, port=5000)
