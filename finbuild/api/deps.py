"""Request dependencies: the caller's user id and the composed engine."""

from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from finbuild.auth import decode_token
from finbuild.services.engine import Engine

import jwt as pyjwt

_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> UUID:
    """Resolve the bearer token to the id of the user making the request.

    Projects are scoped by this id.  There is no user table lookup: a
    verified token with a UUID subject is enough.
    """
    if credentials is None:
        raise _unauthorized("Missing authentication token")

    try:
        claims = decode_token(credentials.credentials)
    except pyjwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except pyjwt.PyJWTError:
        raise _unauthorized("Invalid authentication token")

    try:
        return UUID(str(claims.get("sub") or ""))
    except ValueError:
        raise _unauthorized("Invalid token payload")


def get_engine(request: Request) -> Engine:
    """The engine built in the lifespan (or handed to ``create_app``)."""
    return request.app.state.engine
