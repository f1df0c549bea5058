from types import SimpleNamespace

import pytest

import auth_supabase
from auth_supabase import (
    AuthError, AuthSession, HOME_PAGE, LOGIN_PAGE, SessionContext, diagnose_config,
    get_session, on_session_change, route_for, sign_in, sign_out,
)


class GoTrueError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class FakeSubscription:
    def __init__(self, auth):
        self.auth = auth

    def unsubscribe(self):
        self.auth.callback = None


class FakeAuth:
    def __init__(self):
        self.session = None
        self.callback = None
        self.fail_with = None
        self.signed_out = False

    def sign_in_with_password(self, creds):
        if self.fail_with:
            raise self.fail_with
        user = SimpleNamespace(id="u1", email=creds["email"])
        self.session = SimpleNamespace(user=user, access_token="at", refresh_token="rt")
        return SimpleNamespace(session=self.session, user=user)

    def sign_out(self):
        self.signed_out = True
        self.session = None

    def get_session(self):
        return self.session

    def on_auth_state_change(self, callback):
        self.callback = callback
        return FakeSubscription(self)

    def fire(self, event, session):
        if self.callback:
            self.callback(event, session)


@pytest.fixture
def client():
    return SimpleNamespace(auth=FakeAuth())


def test_sign_in_returns_session(client):
    s = sign_in(" shooter@example.com ", "secret", client=client)
    assert s.email == "shooter@example.com"
    assert s.access_token == "at"
    assert get_session(client).email == "shooter@example.com"


def test_sign_in_requires_credentials(client):
    with pytest.raises(AuthError):
        sign_in("", "secret", client=client)
    with pytest.raises(AuthError):
        sign_in("a@b.c", "", client=client)


def test_sign_in_surfaces_service_message(client):
    client.auth.fail_with = GoTrueError("Invalid login credentials")
    with pytest.raises(AuthError, match="Invalid login credentials"):
        sign_in("a@b.c", "wrong", client=client)


def test_sign_in_without_session(client, monkeypatch):
    monkeypatch.setattr(client.auth, "sign_in_with_password",
                        lambda creds: SimpleNamespace(session=None, user=None))
    with pytest.raises(AuthError, match="no session"):
        sign_in("a@b.c", "pw", client=client)


def test_sign_out(client):
    sign_in("a@b.c", "pw", client=client)
    sign_out(client)
    assert client.auth.signed_out
    assert get_session(client) is None


def test_on_session_change_forwards_and_unsubscribes(client):
    seen = []
    unsubscribe = on_session_change(seen.append, client)
    client.auth.fire("SIGNED_IN", SimpleNamespace(user={"email": "x@y.z"}, access_token="t",
                                                  refresh_token=None))
    client.auth.fire("SIGNED_OUT", None)
    assert seen[0].email == "x@y.z"
    assert seen[1] is None
    unsubscribe()
    assert client.auth.callback is None


def test_session_context_notifies_listeners():
    ctx = SessionContext()
    seen = []
    unsubscribe = ctx.subscribe(seen.append)
    session = AuthSession(user={"email": "a@b.c"}, access_token="t", refresh_token=None)
    ctx.set_session(session)
    assert ctx.has_session
    assert seen == [session]
    unsubscribe()
    assert ctx.listener_count == 0


def test_failing_listener_does_not_stop_others():
    ctx = SessionContext()
    seen = []

    def broken(_session):
        raise RuntimeError("boom")

    ctx.subscribe(broken)
    ctx.subscribe(seen.append)
    ctx.set_session(None)
    assert seen == [None]


def test_watching_removes_listener_on_exit():
    ctx = SessionContext()
    with pytest.raises(KeyError):
        with ctx.watching(lambda s: None):
            assert ctx.listener_count == 1
            raise KeyError("leave early")
    assert ctx.listener_count == 0


def test_bind_and_close(client):
    sign_in("a@b.c", "pw", client=client)
    ctx = SessionContext().bind(client)
    assert ctx.has_session
    client.auth.fire("SIGNED_OUT", None)
    assert not ctx.has_session
    ctx.close()
    assert client.auth.callback is None


def test_context_sign_out_unsubscribes(client):
    sign_in("a@b.c", "pw", client=client)
    ctx = SessionContext().bind(client)
    seen = []
    with ctx.watching(seen.append):
        ctx.sign_out(client)
    assert client.auth.signed_out
    assert seen == [None]
    assert not ctx.has_session
    assert client.auth.callback is None
    assert ctx.listener_count == 0


def test_route_for():
    assert route_for(False, HOME_PAGE) == LOGIN_PAGE
    assert route_for(False, LOGIN_PAGE) is None
    assert route_for(True, LOGIN_PAGE) == HOME_PAGE
    assert route_for(True, HOME_PAGE) is None


def test_unconfigured(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    monkeypatch.setattr(auth_supabase, "get_setting", lambda *a, **kw: kw.get("default"))
    assert diagnose_config() == {"keys_present": False, "client_ok": False}
    assert auth_supabase.get_client() is None
    assert get_session() is None
    with pytest.raises(AuthError):
        sign_in("a@b.c", "pw")
