from chat_server.websocket.session import ConnectionSession

from conftest import ALICE, BOB, CAROL, FakeSession


class FakeServer:
    def __init__(self):
        self.disconnected = []

    def disconnect(self, sid, namespace=None):
        self.disconnected.append((sid, namespace))


class FakeSocketIO:
    """Stands in for flask_socketio.SocketIO; emits to sids in dead_sids fail."""

    def __init__(self):
        self.emitted = []
        self.dead_sids = set()
        self.server = FakeServer()

    def emit(self, event, payload, to=None, namespace=None):
        if to in self.dead_sids:
            raise ConnectionResetError(f'transport for {to} is gone')
        self.emitted.append((to, event, payload))

    def to(self, sid, event):
        return [payload for target, name, payload in self.emitted if target == sid and name == event]


def open_session(socketio, router, user_id, sid):
    session = ConnectionSession(socketio, router, user_id, sid)
    router.connect(user_id, session)
    return session


def test_push_emits_to_own_sid(router):
    socketio = FakeSocketIO()
    session = ConnectionSession(socketio, router, ALICE, 'sid-a')

    assert session.push('chat:typing', {'x': 1}) is True
    assert socketio.emitted == [('sid-a', 'chat:typing', {'x': 1})]


def test_push_failure_is_an_implicit_disconnect(router, registry):
    socketio = FakeSocketIO()
    observer = FakeSession(CAROL)
    router.connect(CAROL, observer)
    session = open_session(socketio, router, ALICE, 'sid-a')
    socketio.dead_sids.add('sid-a')

    assert session.push('chat:message', {'text': 'hi'}) is False

    assert session.closed is True
    assert registry.lookup(ALICE) is None
    assert observer.named('chat:presence')[-1] == {'userId': ALICE, 'status': 'offline'}


def test_dead_recipient_does_not_abort_send(router, registry, conversation_id, unread):
    socketio = FakeSocketIO()
    alice = open_session(socketio, router, ALICE, 'sid-a')
    open_session(socketio, router, BOB, 'sid-b')
    socketio.dead_sids.add('sid-b')

    ack = alice.on_send({'conversationId': conversation_id, 'text': 'are you there?'})

    assert ack['success'] is True
    assert registry.lookup(BOB) is None
    assert unread.count(BOB) == 1
    assert socketio.to('sid-a', 'chat:message')[0]['text'] == 'are you there?'


def test_push_after_close_is_dropped(router):
    socketio = FakeSocketIO()
    session = ConnectionSession(socketio, router, ALICE, 'sid-a')
    session.close()

    assert session.push('chat:message', {}) is False
    assert socketio.emitted == []


def test_close_disconnects_socket_once(router):
    socketio = FakeSocketIO()
    session = ConnectionSession(socketio, router, ALICE, 'sid-a')

    session.close()
    session.close()

    assert socketio.server.disconnected == [('sid-a', '/')]


def test_on_send_accepts_snake_case_payload(router, conversation_id):
    socketio = FakeSocketIO()
    session = open_session(socketio, router, ALICE, 'sid-a')

    ack = session.on_send({'conversation_id': conversation_id, 'content': 'aliases work'})

    assert ack['success'] is True
    assert ack['message']['text'] == 'aliases work'


def test_on_send_rejects_non_object_payload(router):
    socketio = FakeSocketIO()
    session = open_session(socketio, router, ALICE, 'sid-a')

    ack = session.on_send('just a string')

    assert ack == {'success': False, 'error': 'Event payload must be an object', 'code': 'INVALID_DATA'}
    assert socketio.to('sid-a', 'chat:error') == [{'code': 'INVALID_DATA', 'message': 'Event payload must be an object'}]


def test_on_send_missing_conversation_id(router):
    socketio = FakeSocketIO()
    session = open_session(socketio, router, ALICE, 'sid-a')

    ack = session.on_send({'text': 'where does this go'})

    assert ack['success'] is False
    assert ack['code'] == 'INVALID_DATA'
    assert len(socketio.to('sid-a', 'chat:error')) == 1


def test_on_read_acks_senders(router, conversation_id):
    socketio = FakeSocketIO()
    alice = open_session(socketio, router, ALICE, 'sid-a')
    bob = open_session(socketio, router, BOB, 'sid-b')
    alice.on_send({'conversationId': conversation_id, 'text': 'offer: 40'})

    ack = bob.on_read({'conversationId': conversation_id})

    assert ack == {'success': True, 'senders': [ALICE]}
    assert socketio.to('sid-a', 'chat:messages_read') == [{'conversationId': conversation_id, 'readerId': BOB}]


def test_on_typing_validates_flag(router, conversation_id):
    socketio = FakeSocketIO()
    session = open_session(socketio, router, ALICE, 'sid-a')

    ack = session.on_typing({'conversationId': conversation_id, 'isTyping': 'yes'})

    assert ack['success'] is False
    assert socketio.to('sid-a', 'chat:error')[0]['code'] == 'INVALID_DATA'


def test_on_typing_defaults_to_started(router, conversation_id):
    socketio = FakeSocketIO()
    alice = open_session(socketio, router, ALICE, 'sid-a')
    open_session(socketio, router, BOB, 'sid-b')

    ack = alice.on_typing({'conversationId': conversation_id})

    assert ack == {'success': True, 'notified': 1}
    assert socketio.to('sid-b', 'chat:typing') == [{'conversationId': conversation_id, 'userId': ALICE, 'isTyping': True}]
