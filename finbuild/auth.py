"""Bearer token verification.

finbuild never issues tokens.  The identity service that does signs them
with the shared ``JWT_SECRET`` and stamps ``aud``/``iss`` as "finbuild";
the ``sub`` claim carries the user id that owns projects.
"""

import jwt

from finbuild.config import settings

ALGORITHM = "HS256"
AUDIENCE = "finbuild"
ISSUER = "finbuild"
REQUIRED_CLAIMS = ["exp", "iat", "sub", "aud", "iss"]


def decode_token(token: str) -> dict:
    """Verify ``token`` and return its claims.  Raises jwt.PyJWTError on failure."""
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        options={"require": REQUIRED_CLAIMS},
    )
