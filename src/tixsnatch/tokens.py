"""Signing token extraction and rotation from the session cookie."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from tixsnatch.errors import InvalidSession, SessionInvalid
from tixsnatch.models import Session, SigningToken

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "_m_h5_tk"
TOKEN_DELIMITER = "_"


def parse_cookie_header(header: str) -> dict[str, str]:
    """Split a ``name=value; name2=value2`` string, keeping order."""
    cookies: dict[str, str] = {}
    for part in header.split(";"):
        name, sep, value = part.strip().partition("=")
        if not sep or not name:
            continue
        cookies[name.strip()] = value.strip()
    return cookies


def extract_token(cookies: dict[str, str]) -> str | None:
    raw = cookies.get(TOKEN_COOKIE)
    if not raw:
        return None
    token = raw.split(TOKEN_DELIMITER, 1)[0]
    return token or None


class TokenStore:
    """
    Owns the signing token for one session.

    The token is the leading segment of the ``_m_h5_tk`` cookie. When the
    gateway rotates it (via Set-Cookie on an expiry response) the new
    cookies are merged in and every later call signs with the new token.
    Reads and rotation are serialized by a lock.
    """

    def __init__(self, session: Session) -> None:
        self._lock = threading.Lock()
        self._nickname = session.nickname
        self._cookies = parse_cookie_header(session.cookie_header)
        token = extract_token(self._cookies)
        if token is None:
            raise InvalidSession(
                f"Session cookie has no {TOKEN_COOKIE} field. Log in again."
            )
        self._token = SigningToken(value=token, extracted_at=_utcnow())
        logger.debug("Signing token extracted for %s: %s...", self._nickname or "anon", token[:6])

    def current(self) -> SigningToken:
        with self._lock:
            return self._token

    def cookie_header(self) -> str:
        with self._lock:
            return "; ".join(f"{k}={v}" for k, v in self._cookies.items())

    def rotate(self, new_cookie_fragment: str) -> SigningToken:
        """Merge fresh cookies and re-extract the token."""
        fresh = parse_cookie_header(new_cookie_fragment)
        token = extract_token(fresh)
        if token is None:
            raise SessionInvalid("Gateway expired the token without issuing a new one")
        with self._lock:
            self._cookies.update(fresh)
            self._token = SigningToken(value=token, extracted_at=_utcnow())
            logger.info("Signing token rotated: %s...", token[:6])
            return self._token


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
