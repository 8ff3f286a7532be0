"""
Session middleware for LMS Insights

Extracts user identity, capabilities and the session key from headers
injected by the LMS host and stores them in request.state for routes.
"""
from .session import SessionMiddleware, sesskey_for

__all__ = ["SessionMiddleware", "sesskey_for"]
