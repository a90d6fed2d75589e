from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.auth import Identity
from app.services.exceptions import SessionClosedError
from app.services.session_services import SessionProvider, SessionRegistry

ALICE = Identity(id="u1", email="alice@mail.com")


class StubViewModel:
    def __init__(self, session):
        self.session = session
        self.disposed = 0

    def dispose(self):
        self.disposed += 1


def test_provider_is_loading_until_resolved():
    provider = SessionProvider("s1")

    assert provider.is_loading() is True
    assert provider.current_identity() is None

    provider.resolve(ALICE)

    assert provider.is_loading() is False
    assert provider.current_identity() == ALICE


def test_subscriber_gets_current_identity_and_sign_out():
    provider = SessionProvider("s1")
    seen = []
    provider.subscribe(seen.append)
    provider.resolve(ALICE)
    late = []

    provider.subscribe(late.append)
    provider.sign_out()

    assert seen == [ALICE, None]
    assert late == [ALICE, None]
    assert provider.current_identity() is None


def test_removed_listener_is_not_called():
    provider = SessionProvider("s1")
    seen = []
    remove = provider.subscribe(seen.append)

    remove()
    provider.resolve(ALICE)

    assert seen == []


def test_registry_open_get_and_close():
    registry = SessionRegistry(view_model_factory=StubViewModel)

    provider = registry.open("s1", ALICE)
    view_model = registry.view_model("s1")

    assert registry.get("s1") is provider
    assert view_model.session is provider
    assert len(registry) == 1

    registry.close("s1")

    assert view_model.disposed == 1
    assert provider.current_identity() is None
    assert len(registry) == 0
    with pytest.raises(SessionClosedError):
        registry.get("s1")
    with pytest.raises(SessionClosedError):
        registry.view_model("s1")


def test_unknown_or_missing_session_is_closed():
    registry = SessionRegistry(view_model_factory=StubViewModel)

    with pytest.raises(SessionClosedError):
        registry.get("never-opened")
    with pytest.raises(SessionClosedError):
        registry.get(None)


def test_close_of_unknown_session_is_a_no_op():
    registry = SessionRegistry(view_model_factory=StubViewModel)

    registry.close("never-opened")

    assert len(registry) == 0


def test_shutdown_closes_every_session():
    registry = SessionRegistry(view_model_factory=StubViewModel)
    registry.open("s1", ALICE)
    registry.open("s2", Identity(id="u2", email="bob@mail.com"))
    view_models = [registry.view_model("s1"), registry.view_model("s2")]

    registry.shutdown()

    assert len(registry) == 0
    assert [view_model.disposed for view_model in view_models] == [1, 1]


def test_closing_a_real_session_unsubscribes_its_view_model(view_model_factory, db_env):
    registry = SessionRegistry(view_model_factory=view_model_factory)
    registry.open("s1", ALICE)

    assert db_env.change_feed.listener_count("u1") == 1

    registry.close("s1")

    assert db_env.change_feed.listener_count("u1") == 0


class ManualClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def test_expired_session_is_closed_on_lookup(view_model_factory, db_env):
    clock = ManualClock()
    registry = SessionRegistry(view_model_factory=view_model_factory, clock=clock)
    provider = registry.open("s1", ALICE, expires_at=clock.now + timedelta(minutes=30))

    assert registry.get("s1") is provider
    assert db_env.change_feed.listener_count("u1") == 1

    clock.now += timedelta(minutes=30)

    with pytest.raises(SessionClosedError):
        registry.get("s1")
    assert provider.current_identity() is None
    assert len(registry) == 0
    assert db_env.change_feed.listener_count("u1") == 0


def test_opening_a_session_closes_expired_ones():
    clock = ManualClock()
    registry = SessionRegistry(view_model_factory=StubViewModel, clock=clock)
    registry.open("old", ALICE, expires_at=clock.now + timedelta(minutes=5))
    registry.open("forever", Identity(id="u2", email="bob@mail.com"))
    stale = registry.view_model("old")

    clock.now += timedelta(minutes=10)
    registry.open("new", ALICE, expires_at=clock.now + timedelta(minutes=5))

    assert stale.disposed == 1
    assert len(registry) == 2
    assert registry.get("forever").current_identity().id == "u2"
    with pytest.raises(SessionClosedError):
        registry.get("old")


def test_close_expired_keeps_live_sessions():
    clock = ManualClock()
    registry = SessionRegistry(view_model_factory=StubViewModel, clock=clock)
    registry.open("s1", ALICE, expires_at=clock.now + timedelta(minutes=5))
    registry.open("s2", ALICE, expires_at=clock.now + timedelta(minutes=60))

    clock.now += timedelta(minutes=5)

    assert registry.close_expired() == 1
    assert len(registry) == 1
    assert registry.get("s2").session_id == "s2"
