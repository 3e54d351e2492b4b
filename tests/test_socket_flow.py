from datetime import timedelta

from chat_server.messaging.repository import get_conversation_store
from chat_server.messaging.unread import get_unread_counter
from chat_server.websocket.hub import get_websocket_hub
from chat_server.websocket.router import get_delivery_router

from conftest import ALICE, BOB, CAROL, drain, make_token


def open_conversation(a=ALICE, b=BOB):
    conversation_id, _ = get_conversation_store().find_or_create_conversation(a, b)
    return conversation_id


def test_connect_without_token_is_refused(socket_client):
    sio = socket_client()
    assert not sio.is_connected()
    assert get_websocket_hub().connection_count == 0


def test_connect_with_bad_or_expired_token_is_refused(socket_client):
    assert not socket_client(token='not.a.jwt').is_connected()
    assert not socket_client(token=make_token(ALICE, expires_delta=timedelta(seconds=-5))).is_connected()
    assert not get_delivery_router().registry.is_online(ALICE)


def test_connect_registers_presence(socket_client):
    observer = socket_client(CAROL)
    drain(observer)

    alice = socket_client(ALICE)

    assert alice.is_connected()
    assert get_delivery_router().registry.is_online(ALICE)
    assert drain(observer)['chat:presence'] == [{'userId': ALICE, 'status': 'online'}]


def test_disconnect_broadcasts_offline(socket_client):
    observer = socket_client(CAROL)
    alice = socket_client(ALICE)
    drain(observer)

    alice.disconnect()

    assert not get_delivery_router().registry.is_online(ALICE)
    assert drain(observer)['chat:presence'] == [{'userId': ALICE, 'status': 'offline'}]


def test_live_message_delivery(socket_client):
    conversation_id = open_conversation()
    alice = socket_client(ALICE)
    bob = socket_client(BOB)
    drain(alice)
    drain(bob)

    ack = alice.emit('chat:send', {'conversationId': conversation_id, 'text': 'Is it still available?'}, callback=True)

    assert ack['success'] is True
    delivered = drain(bob)['chat:message']
    assert len(delivered) == 1
    assert delivered[0]['text'] == 'Is it still available?'
    assert delivered[0]['senderId'] == ALICE
    assert delivered[0]['senderDisplayName'] == 'Alice'
    assert delivered[0]['isRead'] is False
    assert drain(alice)['chat:message'][0]['id'] == ack['message']['id']


def test_offline_recipient_then_reads_on_connect(socket_client):
    conversation_id = open_conversation()
    bob = socket_client(BOB)

    bob.emit('chat:send', {'conversationId': conversation_id, 'text': 'Hi, I can pick it up today'}, callback=True)
    assert get_unread_counter().count(ALICE) == 1
    drain(bob)

    alice = socket_client(ALICE)
    ack = alice.emit('chat:read', {'conversationId': conversation_id}, callback=True)

    assert ack == {'success': True, 'senders': [BOB]}
    assert get_unread_counter().count(ALICE) == 0
    receipts = drain(bob)['chat:messages_read']
    assert receipts == [{'conversationId': conversation_id, 'readerId': ALICE}]

    alice.emit('chat:read', {'conversationId': conversation_id}, callback=True)
    assert 'chat:messages_read' not in drain(bob)


def test_typing_indicator(socket_client):
    conversation_id = open_conversation()
    alice = socket_client(ALICE)
    bob = socket_client(BOB)
    drain(bob)

    alice.emit('chat:typing', {'conversationId': conversation_id, 'isTyping': True}, callback=True)
    alice.emit('chat:typing', {'conversationId': conversation_id, 'isTyping': False}, callback=True)

    assert [e['isTyping'] for e in drain(bob)['chat:typing']] == [True, False]


def test_non_participant_gets_error_and_nobody_else_hears(socket_client):
    conversation_id = open_conversation()
    alice = socket_client(ALICE)
    bob = socket_client(BOB)
    carol = socket_client(CAROL)
    drain(alice)
    drain(bob)
    drain(carol)

    ack = carol.emit('chat:send', {'conversationId': conversation_id, 'text': 'hello'}, callback=True)

    assert ack['success'] is False
    assert ack['code'] == 'FORBIDDEN'
    assert drain(carol)['chat:error'][0]['code'] == 'FORBIDDEN'
    assert drain(alice) == {}
    assert drain(bob) == {}


def test_reconnect_moves_delivery_to_new_connection(socket_client):
    conversation_id = open_conversation()
    observer = socket_client(CAROL)
    socket_client(BOB)
    drain(observer)
    bob_again = socket_client(BOB)
    alice = socket_client(ALICE)
    drain(bob_again)

    alice.emit('chat:send', {'conversationId': conversation_id, 'text': 'to the newest tab'}, callback=True)

    assert [m['text'] for m in drain(bob_again)['chat:message']] == ['to the newest tab']
    bob_presence = [p for p in drain(observer).get('chat:presence', []) if p['userId'] == BOB]
    assert bob_presence == []
    assert get_delivery_router().registry.is_online(BOB)
