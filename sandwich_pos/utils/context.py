"""
Application Context Helpers
"""

from contextlib import nullcontext

from flask import has_app_context


def app_context(app):
    """
    Context manager for background work

    Reuses the active application context (request threads, CLI commands)
    and pushes a new one for scheduler threads.
    """
    if has_app_context():
        return nullcontext()
    return app.app_context()
