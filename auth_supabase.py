from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from supabase import create_client, Client

from config import get_setting

logger = logging.getLogger(__name__)

LOGIN_PAGE = "login"
HOME_PAGE = "home"


class AuthError(RuntimeError):
    """Sign-in failed; the message comes from the auth service as-is."""


@dataclass
class AuthSession:
    user: Dict[str, Any]
    access_token: str
    refresh_token: Optional[str]

    @property
    def email(self) -> Optional[str]:
        return self.user.get("email")


def _get_supabase_keys() -> Optional[tuple[str, str]]:
    """Read Supabase URL and Anon key from Streamlit secrets or env vars."""
    url = get_setting("supabase", "url", env="SUPABASE_URL")
    key = get_setting("supabase", "anon_key", env="SUPABASE_ANON_KEY")
    if url and key:
        return str(url), str(key)
    return None


def diagnose_config() -> Dict[str, Any]:
    """Return a non-sensitive snapshot of auth config state for debugging.

    Does not include secret values.
    """
    keys_present = _get_supabase_keys() is not None
    client_ok = False
    if keys_present:
        try:
            client_ok = get_client() is not None
        except Exception:
            client_ok = False
    return {
        "keys_present": keys_present,
        "client_ok": client_ok,
    }


def get_client() -> Optional[Client]:
    """Return a Supabase client if configured, else None."""
    keys = _get_supabase_keys()
    if not keys:
        return None
    url, key = keys
    try:
        return create_client(url, key)
    except Exception as e:
        logger.error("Could not create Supabase client: %s", e)
        return None


def _require(client: Optional[Client]) -> Client:
    sb = client or get_client()
    if sb is None:
        raise AuthError("Supabase is not configured or client unavailable")
    return sb


def _session_from(session: Any, user: Any = None) -> Optional[AuthSession]:
    if not session:
        return None
    user = user or getattr(session, "user", None)
    return AuthSession(
        user=_to_dict(user),
        access_token=getattr(session, "access_token", None),
        refresh_token=getattr(session, "refresh_token", None),
    )


def sign_in(email: str, password: str, client: Optional[Client] = None) -> AuthSession:
    sb = _require(client)
    if not (email or "").strip() or not password:
        raise AuthError("Please enter your email and password")
    try:
        res = sb.auth.sign_in_with_password({"email": email.strip(), "password": password})
    except Exception as e:
        # gotrue errors carry the user-facing text in .message
        raise AuthError(getattr(e, "message", None) or str(e)) from e
    session = getattr(res, "session", None)
    user = getattr(res, "user", None)
    if not session or not user:
        raise AuthError("Invalid login: no session returned")
    logger.info("Signed in as %s", getattr(user, "email", None))
    return _session_from(session, user)


def sign_out(client: Optional[Client] = None) -> None:
    sb = client or get_client()
    if sb is None:
        return
    try:
        sb.auth.sign_out()
    except Exception as e:
        logger.warning("Sign out failed: %s", e)


def get_session(client: Optional[Client] = None) -> Optional[AuthSession]:
    sb = client or get_client()
    if sb is None:
        return None
    try:
        return _session_from(sb.auth.get_session())
    except Exception as e:
        logger.error("Error getting session: %s", e)
        return None


def on_session_change(callback: Callable[[Optional[AuthSession]], None],
                      client: Optional[Client] = None) -> Callable[[], None]:
    """Forward Supabase auth state changes; returns an unsubscribe function."""
    sb = _require(client)
    sub = sb.auth.on_auth_state_change(lambda _event, session: callback(_session_from(session)))

    def unsubscribe() -> None:
        try:
            sub.unsubscribe()
        except Exception as e:
            logger.error("Error unsubscribing from auth changes: %s", e)

    return unsubscribe


class SessionContext:
    """The current session plus the parties watching it.

    Passed explicitly to whatever decides navigation. Listeners are added
    with subscribe() and must be removed again; watching() does both around
    a block.
    """

    def __init__(self, session: Optional[AuthSession] = None):
        self.session = session
        self._listeners: List[Callable[[Optional[AuthSession]], None]] = []
        self._unbind: Optional[Callable[[], None]] = None

    @property
    def has_session(self) -> bool:
        return self.session is not None

    def set_session(self, session: Optional[AuthSession]) -> None:
        self.session = session
        logger.info("Auth state changed: %s", session.email if session else "No session")
        for cb in list(self._listeners):
            try:
                cb(session)
            except Exception as e:
                logger.error("Error handling auth state change: %s", e)

    def subscribe(self, callback: Callable[[Optional[AuthSession]], None]) -> Callable[[], None]:
        self._listeners.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @contextmanager
    def watching(self, callback: Callable[[Optional[AuthSession]], None]):
        unsubscribe = self.subscribe(callback)
        try:
            yield self
        finally:
            unsubscribe()

    def bind(self, client: Client) -> "SessionContext":
        """Load the current session and follow the client's auth changes."""
        self.close()
        self.session = get_session(client)
        self._unbind = on_session_change(self.set_session, client)
        return self

    def close(self) -> None:
        if self._unbind:
            self._unbind()
            self._unbind = None

    def sign_out(self, client: Optional[Client] = None) -> None:
        """Sign out, tell listeners, then stop following auth changes."""
        sign_out(client)
        self.set_session(None)
        self.close()


def route_for(has_session: bool, page: str) -> Optional[str]:
    """Where to send the user, or None to stay on `page`."""
    on_login = page == LOGIN_PAGE
    if not has_session and not on_login:
        return LOGIN_PAGE
    if has_session and on_login:
        return HOME_PAGE
    return None


def _to_dict(obj: Any) -> Dict[str, Any]:
    """Convert a Supabase user object to a plain dict."""
    try:
        # Attempt dataclass-like conversion
        if hasattr(obj, "model_dump"):
            return obj.model_dump()
        if isinstance(obj, dict):
            return dict(obj)
        if hasattr(obj, "__dict__"):
            return dict(obj.__dict__)
    except Exception:
        pass
    # Fallback best-effort
    return dict(obj or {})
