"""
Admin authorization gate.

The gate is driven only by the result of a session lookup, passed in
explicitly as a SessionContext:

- loading: the lookup has not finished; render nothing and do not redirect
- authorized: signed in, unlocked, role ``admin``; render the protected content
- unauthorized: anything else; show a denial message and redirect to the
  login view, once per render
"""
from enum import Enum
from typing import Any, Callable, Mapping, Optional

DEFAULT_LOGIN_PATH = '/admin-login'
DENIED_MESSAGE = 'Access denied. Admin privileges are required.'


class GateState(Enum):
    LOADING = 'loading'
    AUTHORIZED = 'authorized'
    UNAUTHORIZED = 'unauthorized'


def _field(user, name, default=None):
    # Users arrive either as model instances or as /api/auth/me JSON payloads
    if isinstance(user, Mapping):
        return user.get(name, default)
    return getattr(user, name, default)


class SessionContext:
    """Result of the session lookup: the user (or None) and whether it is still pending."""

    def __init__(self, user: Any = None, is_loading: bool = False):
        self.user = user
        self.is_loading = is_loading

    @classmethod
    def loading(cls) -> 'SessionContext':
        return cls(user=None, is_loading=True)

    @classmethod
    def from_me_response(cls, response) -> 'SessionContext':
        """Build a context from a ``GET /api/auth/me`` response."""
        if response.status_code != 200:
            return cls(user=None)
        payload = response.json() or {}
        return cls(user=payload.get('user'))

    def __repr__(self):
        return f'<SessionContext user={self.user!r} loading={self.is_loading}>'


def is_admin(session: SessionContext) -> bool:
    user = session.user
    if user is None or session.is_loading:
        return False
    active = _field(user, 'is_active', _field(user, 'isActive', True))
    return _field(user, 'role') == 'admin' and bool(active)


class AdminGate:
    def __init__(self,
                 on_redirect: Callable[[str], Any],
                 on_deny: Optional[Callable[[str], Any]] = None,
                 login_path: str = DEFAULT_LOGIN_PATH):
        self.on_redirect = on_redirect
        self.on_deny = on_deny
        self.login_path = login_path

    def state_for(self, session: SessionContext) -> GateState:
        if session.is_loading:
            return GateState.LOADING
        if is_admin(session):
            return GateState.AUTHORIZED
        return GateState.UNAUTHORIZED

    def render(self, session: SessionContext, content: Callable[[], Any]):
        """Render ``content`` for admins; otherwise return None or the redirect result."""
        state = self.state_for(session)
        if state is GateState.LOADING:
            return None
        if state is GateState.UNAUTHORIZED:
            if self.on_deny is not None:
                self.on_deny(DENIED_MESSAGE)
            return self.on_redirect(self.login_path)
        return content()


def fetch_session(client) -> SessionContext:
    """Look up the current session through an ApiClient."""
    return SessionContext.from_me_response(client.get('/api/auth/me'))
