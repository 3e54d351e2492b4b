"""Real-time chat presence and delivery for the marketplace.

The application factory lives in server.py; tests and alternative runners
import the pieces they need from the subpackages directly.
"""
