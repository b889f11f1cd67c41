"""
Bearer-token verification.

Tokens are issued elsewhere (the identity service); this module only checks
them. A token is accepted when it is a JWT signed with SECRET_KEY, has not
expired, and carries a subject.

Usage in a router:
    router = APIRouter(dependencies=[Depends(require_bearer_token)])
"""

import logging
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from videoteca.errors import UnauthorizedError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class TokenVerifier:
    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def verify(self, token: str) -> str:
        """Return the token's subject or raise UnauthorizedError."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise UnauthorizedError("Token has expired")
        except jwt.InvalidTokenError:
            raise UnauthorizedError("Invalid token")

        subject = payload.get("sub")
        if not subject:
            raise UnauthorizedError("Token has no subject")
        return str(subject)


async def require_bearer_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """FastAPI dependency: the authenticated subject, or 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Bearer token required")

    verifier: TokenVerifier = request.app.state.token_verifier
    subject = verifier.verify(credentials.credentials)
    request.state.user_id = subject
    return subject
