"""Configuration module for the chat server.

Supports multiple environments:
- development (default)
- staging
- production

Usage:
    from config import config

    mongo_uri = config.MONGO_URI
    if config.IS_DEV:
        ...

Set environment via:
- FLASK_ENV=production
- APP_ENV=staging
"""
from .settings import config, Config

__all__ = ['config', 'Config']
