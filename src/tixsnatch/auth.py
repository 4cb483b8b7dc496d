"""Session storage via OS keyring."""

from __future__ import annotations

import logging

import keyring
from keyring.errors import PasswordDeleteError

from tixsnatch.errors import AuthError
from tixsnatch.models import Session
from tixsnatch.tokens import TokenStore

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "tixsnatch-damai"


class SessionManager:
    """Keeps the logged-in cookie header + nickname in the OS keyring."""

    def store_session(self, cookie_header: str, nickname: str) -> Session:
        """Validate and store a session. Raises InvalidSession on a tokenless cookie."""
        session = Session(cookie_header=cookie_header.strip(), nickname=nickname.strip())
        TokenStore(session)
        keyring.set_password(KEYRING_SERVICE, "nickname", session.nickname)
        keyring.set_password(KEYRING_SERVICE, "cookie", session.cookie_header)
        logger.info("Session for %s stored in keyring.", session.nickname or "anonymous")
        return session

    def load_session(self) -> Session:
        cookie = keyring.get_password(KEYRING_SERVICE, "cookie")
        if not cookie:
            raise AuthError("No session found. Run 'tixsnatch configure' first.")
        nickname = keyring.get_password(KEYRING_SERVICE, "nickname") or ""
        return Session(cookie_header=cookie, nickname=nickname)

    def clear_session(self) -> None:
        for key in ("cookie", "nickname"):
            try:
                keyring.delete_password(KEYRING_SERVICE, key)
            except PasswordDeleteError:
                pass
        logger.info("Session removed from keyring.")
