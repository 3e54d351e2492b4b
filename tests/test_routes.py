from chat_server.messaging.repository import get_conversation_store

from conftest import ALICE, BOB, CAROL, DAVE, auth_headers, drain


def create_conversation(client, sender, recipient, **extra):
    body = {'recipientId': recipient, **extra}
    return client.post('/api/chat/conversations', json=body, headers=auth_headers(sender))


def test_health(client):
    resp = client.get('/api/chat/health')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    assert body['status'] == 'ok'
    assert body['version'] == '1.0.0'


def test_requires_bearer_token(client):
    resp = client.get('/api/chat/conversations')
    assert resp.status_code == 401
    assert resp.get_json()['success'] is False

    resp = client.get('/api/chat/conversations', headers={'Authorization': 'Bearer not.a.jwt'})
    assert resp.status_code == 401


def test_start_conversation_created_then_existing(client):
    first = create_conversation(client, ALICE, BOB)
    second = create_conversation(client, BOB, ALICE)

    assert first.status_code == 201
    assert first.get_json()['created'] is True
    assert second.status_code == 200
    assert second.get_json()['conversationId'] == first.get_json()['conversationId']


def test_start_conversation_with_initial_message(client):
    resp = create_conversation(client, ALICE, CAROL, initialMessage='Hello, is the desk available?')

    body = resp.get_json()
    assert resp.status_code == 201
    assert body['message']['text'] == 'Hello, is the desk available?'
    assert body['message']['conversationId'] == body['conversationId']


def test_start_conversation_unknown_or_inactive_recipient(client):
    assert create_conversation(client, ALICE, 404).status_code == 404
    assert create_conversation(client, ALICE, DAVE).status_code == 404


def test_start_conversation_validation(client):
    assert create_conversation(client, ALICE, ALICE).status_code == 400
    assert create_conversation(client, ALICE, 'bob').status_code == 400
    resp = client.post('/api/chat/conversations', data='nope', headers=auth_headers(ALICE))
    assert resp.status_code == 400


def test_send_and_read_history(client):
    conversation_id = create_conversation(client, ALICE, BOB).get_json()['conversationId']

    sent = client.post(f'/api/chat/conversations/{conversation_id}', json={'text': 'Can you do 30?'},
                       headers=auth_headers(ALICE))
    assert sent.status_code == 201
    assert sent.get_json()['message']['senderId'] == ALICE

    assert client.get('/api/chat/unread', headers=auth_headers(BOB)).get_json()['count'] == 1

    history = client.get(f'/api/chat/conversations/{conversation_id}', headers=auth_headers(BOB))
    assert history.status_code == 200
    assert [m['text'] for m in history.get_json()['messages']] == ['Can you do 30?']

    assert client.get('/api/chat/unread', headers=auth_headers(BOB)).get_json()['count'] == 0


def test_send_empty_text_is_400(client):
    conversation_id = create_conversation(client, ALICE, BOB).get_json()['conversationId']
    resp = client.post(f'/api/chat/conversations/{conversation_id}', json={'text': '  '},
                       headers=auth_headers(ALICE))
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'INVALID_DATA'


def test_history_access_rules(client):
    conversation_id = create_conversation(client, ALICE, BOB).get_json()['conversationId']

    forbidden = client.get(f'/api/chat/conversations/{conversation_id}', headers=auth_headers(CAROL))
    assert forbidden.status_code == 403
    assert forbidden.get_json()['code'] == 'FORBIDDEN'

    missing = client.get('/api/chat/conversations/CONV-000000000000', headers=auth_headers(ALICE))
    assert missing.status_code == 404


def test_history_paging_params(client, clock):
    conversation_id = create_conversation(client, ALICE, BOB).get_json()['conversationId']
    for text in ('one', 'two', 'three'):
        client.post(f'/api/chat/conversations/{conversation_id}', json={'text': text}, headers=auth_headers(ALICE))

    page = client.get(f'/api/chat/conversations/{conversation_id}?limit=2', headers=auth_headers(BOB))
    assert [m['text'] for m in page.get_json()['messages']] == ['two', 'three']

    bad = client.get(f'/api/chat/conversations/{conversation_id}?limit=0', headers=auth_headers(BOB))
    assert bad.status_code == 400
    bad = client.get(f'/api/chat/conversations/{conversation_id}?before=yesterday', headers=auth_headers(BOB))
    assert bad.status_code == 400


def test_list_conversations(client, socket_client):
    conversation_id = create_conversation(client, ALICE, BOB, initialMessage='first').get_json()['conversationId']
    socket_client(ALICE)

    resp = client.get('/api/chat/conversations', headers=auth_headers(BOB))
    body = resp.get_json()

    assert resp.status_code == 200
    assert body['count'] == 1
    entry = body['conversations'][0]
    assert entry['id'] == conversation_id
    assert entry['unreadCount'] == 1
    assert entry['lastMessage']['text'] == 'first'
    assert entry['participants'] == [{
        'id': ALICE, 'name': 'Alice', 'avatar': 'https://img.example/alice.png', 'online': True,
    }]


def test_presence_endpoint(client, socket_client):
    socket_client(BOB)

    online = client.get(f'/api/chat/presence/{BOB}', headers=auth_headers(ALICE)).get_json()
    offline = client.get(f'/api/chat/presence/{CAROL}', headers=auth_headers(ALICE)).get_json()

    assert online == {'success': True, 'userId': BOB, 'status': 'online'}
    assert offline == {'success': True, 'userId': CAROL, 'status': 'offline'}


def test_http_send_reaches_connected_recipient(client, socket_client):
    conversation_id = create_conversation(client, ALICE, BOB).get_json()['conversationId']
    bob = socket_client(BOB)
    drain(bob)

    client.post(f'/api/chat/conversations/{conversation_id}', json={'text': 'sent from the web app'},
                headers=auth_headers(ALICE))

    assert [m['text'] for m in drain(bob)['chat:message']] == ['sent from the web app']


def test_http_history_read_sends_receipt(client, socket_client):
    conversation_id = create_conversation(client, ALICE, BOB).get_json()['conversationId']
    alice = socket_client(ALICE)
    client.post(f'/api/chat/conversations/{conversation_id}', json={'text': 'ping'}, headers=auth_headers(ALICE))
    drain(alice)

    client.get(f'/api/chat/conversations/{conversation_id}', headers=auth_headers(BOB))

    assert drain(alice)['chat:messages_read'] == [{'conversationId': conversation_id, 'readerId': BOB}]
    assert get_conversation_store().mark_read(conversation_id, BOB) == set()
