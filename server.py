import argparse
import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config
from chat_server.messaging.repository import ConversationStore, set_conversation_store
from chat_server.messaging.unread import UnreadCounter, set_unread_counter
from chat_server.repository.mongo_helper import MongoRepositorySingleton
from chat_server.routes.chat import chat_bp
from chat_server.security.authentication import AuthSecurity
from chat_server.websocket.hub import init_websocket_hub
from chat_server.websocket.presence import get_presence_registry
from chat_server.websocket.router import init_delivery_router

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)


def configure_auth_from_config():
    """Configure AuthSecurity from config (JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_MINUTES)."""
    AuthSecurity.configure_from_config()


def create_app(db=None, socketio: SocketIO = None):
    """Application factory used by server.py and tests.

    Configures token validation from config, then wires the conversation
    store, presence registry, delivery router and Socket.IO hub to one
    database handle (the configured MongoDB unless db is given) and
    registers the chat blueprint.

    Returns (app, socketio).
    """
    configure_auth_from_config()

    app = Flask(__name__)
    CORS(app, origins=config.CORS_ORIGINS_LIST)

    if db is not None:
        MongoRepositorySingleton.set_db(db)
    db = MongoRepositorySingleton.get_db()

    store = ConversationStore(db)
    set_conversation_store(store)
    set_unread_counter(UnreadCounter(db))
    try:
        store.ensure_indexes()
    except Exception:
        logger.exception('Could not ensure chat indexes; continuing')

    router = init_delivery_router(store, get_presence_registry())

    app.register_blueprint(chat_bp)

    if socketio is None:
        socketio = SocketIO(async_mode='threading', cors_allowed_origins=config.CORS_ORIGINS_LIST)
    socketio.init_app(app)
    init_websocket_hub(app, socketio, router)

    return app, socketio


def parse_args():
    """Parse simple CLI arguments for running the server."""
    parser = argparse.ArgumentParser(description='Run the marketplace chat server')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: config PORT)')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind (default: 0.0.0.0)')
    return parser.parse_args()


if __name__ == "__main__":
    configure_logging()
    config.validate_required()
    args = parse_args()
    app, socketio = create_app()
    logging.info('Starting %s with Socket.IO on port %s', config.APP_NAME, args.port)
    socketio.run(app, host=args.host, port=args.port, debug=config.DEBUG, allow_unsafe_werkzeug=True)
