"""
Explicit session context: the current-user projection plus a subscribe/unsubscribe
contract, passed to components that need to know who is signed in.
"""

import logging
from typing import Any, Callable, List, Optional

from studybuddy.core.exceptions import UnauthorizedError, ValidationError
from studybuddy.modules.auth.schemas import SessionUser

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[SessionUser]], None]


def _project(session: Any) -> Optional[SessionUser]:
    user = getattr(session, "user", None) if session is not None else None
    if user is None:
        return None
    return SessionUser(id=user.id, email=user.email or "")


class SessionContext:
    """
    Holds the signed-in user and notifies listeners on every transition.

    `auth` is a Supabase auth client (`client.auth`). Without one the context is
    pinned to the `user` it was built with, e.g. a user resolved from a bearer
    token for one WebSocket connection.
    """

    def __init__(self, auth: Any = None, user: Optional[SessionUser] = None):
        self._auth = auth
        self._listeners: List[SessionListener] = []
        self._provider_subscription = None
        self.user = user
        if auth is not None:
            self._provider_subscription = auth.on_auth_state_change(self._on_auth_event)
            self.user = _project(auth.get_session())

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def require_user(self) -> SessionUser:
        if self.user is None:
            raise UnauthorizedError("Sign in required")
        return self.user

    def _on_auth_event(self, event: str, session: Any) -> None:
        logger.debug(f"Auth state change: {event}")
        self._set_user(_project(session))

    def _set_user(self, user: Optional[SessionUser]) -> None:
        self.user = user
        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception:
                logger.exception("Session listener failed")

    def _require_auth(self) -> Any:
        if self._auth is None:
            raise UnauthorizedError("Session is not bound to an identity provider")
        return self._auth

    def sign_in(self, email: str, password: str) -> SessionUser:
        if not email or not password:
            raise ValidationError("Email and password are required")
        response = self._require_auth().sign_in_with_password({"email": email, "password": password})
        # Providers fire on_auth_state_change too; setting here keeps the call synchronous for callers
        self._set_user(_project(response))
        return self.require_user()

    def sign_up(self, email: str, password: str) -> Optional[SessionUser]:
        """Returns the user when the provider opens a session immediately (no email confirmation)."""
        if not email or not password:
            raise ValidationError("Email and password are required")
        response = self._require_auth().sign_up({"email": email, "password": password})
        if getattr(response, "session", None) is not None:
            self._set_user(_project(response))
        return self.user

    def sign_out(self) -> None:
        if self._auth is not None:
            self._auth.sign_out()
        self._set_user(None)

    def close(self) -> None:
        """Release the provider subscription and end the session for all listeners."""
        if self._provider_subscription is not None:
            self._provider_subscription.unsubscribe()
            self._provider_subscription = None
        self._set_user(None)
        self._listeners.clear()
