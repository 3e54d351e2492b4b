import os
from datetime import datetime, timedelta

os.environ['FLASK_ENV'] = 'test'
os.environ['JWT_SECRET'] = 'test-secret'
os.environ['ACTIVITY_LOG_ENABLED'] = 'false'

import mongomock
import pytest

from chat_server.messaging import models as message_models
from chat_server.messaging import repository as store_module
from chat_server.messaging.repository import ConversationStore, set_conversation_store
from chat_server.messaging.unread import UnreadCounter, set_unread_counter
from chat_server.repository.mongo_helper import MongoRepositorySingleton, USERS
from chat_server.security.authentication import AuthSecurity
from chat_server.websocket.hub import reset_websocket_hub
from chat_server.websocket.presence import PresenceRegistry, reset_presence_registry
from chat_server.websocket.router import DeliveryRouter, reset_delivery_router

ALICE, BOB, CAROL, DAVE = 1, 2, 3, 4
TEST_SECRET = 'test-secret'


class FakeSession:
    """Records what the router pushes to a connection."""

    def __init__(self, user_id, on_push=None):
        self.user_id = user_id
        self.events = []
        self.closed = False
        self._on_push = on_push

    def push(self, event, payload):
        if self.closed:
            return False
        if self._on_push:
            self._on_push(event, payload)
        self.events.append((event, payload))
        return True

    def close(self):
        self.closed = True

    def named(self, event):
        return [payload for name, payload in self.events if name == event]


def make_token(user_id, expires_delta=None):
    return AuthSecurity.encode_token({'user_id': user_id}, expires_delta=expires_delta)


@pytest.fixture(autouse=True)
def _reset_singletons():
    AuthSecurity.configure(secret_key=TEST_SECRET)
    yield
    MongoRepositorySingleton.reset()
    set_conversation_store(None)
    set_unread_counter(None)
    reset_delivery_router()
    reset_presence_registry()
    reset_websocket_hub()


@pytest.fixture()
def db():
    database = mongomock.MongoClient()['chat_test']
    MongoRepositorySingleton.set_db(database)
    MongoRepositorySingleton.ensure_indexes(database)
    database[USERS].insert_many([
        {'user_id': ALICE, 'name': 'Alice', 'profile_pic': 'https://img.example/alice.png', 'active': True},
        {'user_id': BOB, 'name': 'Bob', 'profile_pic': None, 'active': True},
        {'user_id': CAROL, 'name': 'Carol', 'active': True},
        {'user_id': DAVE, 'name': 'Dave', 'active': False},
    ])
    return database


@pytest.fixture()
def clock(monkeypatch):
    """Deterministic, strictly increasing timestamps for stored records."""
    state = {'now': datetime(2024, 5, 1, 12, 0, 0)}

    def _tick():
        state['now'] = state['now'] + timedelta(seconds=1)
        return state['now']

    monkeypatch.setattr(message_models, 'utc_now', _tick)
    monkeypatch.setattr(store_module, 'utc_now', _tick)
    return state


@pytest.fixture()
def store(db):
    return ConversationStore(db, use_transactions=False)


@pytest.fixture()
def unread(db):
    return UnreadCounter(db)


@pytest.fixture()
def registry():
    return PresenceRegistry()


@pytest.fixture()
def router(store, registry):
    return DeliveryRouter(store, registry)


@pytest.fixture()
def conversation_id(store):
    conversation_id, _ = store.find_or_create_conversation(ALICE, BOB)
    return conversation_id


@pytest.fixture()
def app_and_socketio(db):
    from server import create_app

    app, socketio = create_app(db)
    app.config['TESTING'] = True
    return app, socketio


@pytest.fixture()
def app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def socket_client(app_and_socketio):
    """Factory for authenticated Socket.IO test clients."""
    app, socketio = app_and_socketio
    clients = []

    def _connect(user_id=None, token=None):
        if token is None and user_id is not None:
            token = make_token(user_id)
        auth = {'token': token} if token else None
        sio_client = socketio.test_client(app, auth=auth)
        clients.append(sio_client)
        return sio_client

    yield _connect

    for sio_client in clients:
        if sio_client.is_connected():
            sio_client.disconnect()


def auth_headers(user_id):
    return {'Authorization': f'Bearer {make_token(user_id)}'}


def drain(sio_client):
    """Everything the client received since the last drain, grouped by event name."""
    events = {}
    for item in sio_client.get_received():
        events.setdefault(item['name'], []).append(item['args'][0] if item['args'] else None)
    return events
