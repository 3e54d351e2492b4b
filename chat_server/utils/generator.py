import random


def generate_key(length):
    return ''.join(random.choices('0123456789', k=length))


def generate_conversation_id():
    return f"CONV-{generate_key(12)}"


def generate_message_id():
    return f"MSG-{generate_key(16)}"
