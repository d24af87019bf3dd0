"""Opaque bearer tokens mapping to a verified player identity."""
from fastapi import Header, HTTPException
from typing import Dict, Optional, Tuple
import hmac
import logging
import secrets
import time

import config

logger = logging.getLogger(__name__)


class TokenRegistry:
    def __init__(self, ttl_seconds: int = config.TOKEN_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self.tokens: Dict[str, Tuple[str, float]] = {}  # token -> (identity, expires_at)
        self.usernames: Dict[str, str] = {}  # lowercased -> as registered

    def register(self, username: str) -> str:
        """Claim ``username`` and return a fresh token. Raises ValueError if taken."""
        key = username.lower()
        if key in self.usernames:
            raise ValueError("Username already taken")
        self.usernames[key] = username
        return self.issue(username)

    def issue(self, identity: str) -> str:
        token = secrets.token_urlsafe(32)
        self.tokens[token] = (identity, time.time() + self.ttl_seconds)
        return token

    def verify(self, token: str) -> Optional[str]:
        """Return the identity for a valid token, or None."""
        if not token:
            return None
        for known, (identity, expires_at) in list(self.tokens.items()):
            if hmac.compare_digest(known, token):
                if time.time() >= expires_at:
                    self.tokens.pop(known, None)
                    logger.info("Expired token rejected for %s", identity)
                    return None
                return identity
        return None

    def clear(self):
        self.tokens.clear()
        self.usernames.clear()


token_registry = TokenRegistry()


def bearer_token(authorization: str) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


async def require_identity(authorization: str = Header(default="")) -> str:
    """FastAPI dependency: resolve the caller's identity or fail with 401."""
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    identity = token_registry.verify(token)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return identity
