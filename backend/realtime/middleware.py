"""WebSocket authentication: JWT in the querystring, session cookie otherwise."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


@database_sync_to_async
def _user_for_token(raw_token: str):
    User = get_user_model()
    try:
        user_id = AccessToken(raw_token)["user_id"]
        return User.objects.get(id=user_id, is_active=True)
    except (TokenError, KeyError, User.DoesNotExist) as e:
        logger.debug("JWT feed auth failed: %s", e)
        return AnonymousUser()


class JWTQueryAuthMiddleware(BaseMiddleware):
    """
    Authenticate feed connections from `?token=<access token>`.

    Must sit inside AuthMiddlewareStack: without a token the session
    user it resolved is kept.
    """

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get("query_string", b"").decode())
        token_list = params.get("token")
        if token_list:
            scope = dict(scope, user=await _user_for_token(token_list[0]))
        elif "user" not in scope:
            scope = dict(scope, user=AnonymousUser())
        return await super().__call__(scope, receive, send)


def JWTAuthMiddlewareStack(inner):
    from channels.auth import AuthMiddlewareStack
    return AuthMiddlewareStack(JWTQueryAuthMiddleware(inner))
