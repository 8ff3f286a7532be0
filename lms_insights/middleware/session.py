"""
Session middleware for the LMS host integration.

The host gateway authenticates the user and forwards identity headers.
This middleware extracts them and stores them in request.state.
"""
import hashlib
import hmac
import os

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CAPABILITIES = "report/adeptus_insights:view"


def sesskey_for(user_id: int) -> str:
    """
    Derive a stable session key for a user when the host does not send one.
    """
    secret = os.getenv("SESSKEY_SECRET", "lms-insights-dev-secret")
    digest = hmac.new(secret.encode(), str(user_id).encode(), hashlib.sha256).hexdigest()
    return digest[:10]


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Middleware to extract user information from request headers.

    Sets request.state.user_id, username, fullname, capabilities and
    sesskey for use in routes. Requests without X-User-ID are anonymous
    (user_id=0) and are rejected by the capability dependency.
    """

    async def dispatch(self, request: Request, call_next):
        user_id = request.headers.get('X-User-ID', '0')
        username = request.headers.get('X-Username', 'guest')
        fullname = request.headers.get('X-Fullname', username)
        capabilities = request.headers.get(
            'X-Capabilities',
            os.getenv("DEFAULT_CAPABILITIES", DEFAULT_CAPABILITIES)
        )

        try:
            user_id = int(user_id)
        except ValueError:
            logger.warning(f"Invalid user ID in headers: user={user_id}")
            user_id = 0

        request.state.user_id = user_id
        request.state.username = username
        request.state.fullname = fullname
        request.state.capabilities = {c.strip() for c in capabilities.split(',') if c.strip()}
        request.state.sesskey = request.headers.get('X-Session-Key') or sesskey_for(user_id)

        if user_id == 0:
            logger.debug(f"Anonymous request: {request.method} {request.url.path}")
        else:
            logger.debug(f"Request: {request.method} {request.url.path} (user={user_id})")

        response = await call_next(request)
        return response
