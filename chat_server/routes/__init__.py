from chat_server.routes.chat import chat_bp

__all__ = ['chat_bp']
