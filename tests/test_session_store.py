import logging
from datetime import timedelta

import pytest

from models.base_model import utcnow
from models.refresh_token import RefreshToken
from services.session_store import DeviceInfo
from utils.security import hash_secret
from tests.conftest import create_user, run_concurrently


@pytest.fixture
def user_id(app):
    return create_user(app, "holder@example.com")


@pytest.fixture
def store(services):
    return services.sessions


def _rows(services):
    return services.storage.get_session().query(RefreshToken).populate_existing().all()


def test_only_digest_is_persisted(services, store, user_id):
    raw = store.create(user_id, DeviceInfo(user_agent="pytest", ip_address="127.0.0.1"))
    [row] = _rows(services)
    assert row.token_hash == hash_secret(raw)
    assert raw not in (row.token_hash, row.user_agent, row.ip_address)
    assert row.user_agent == "pytest"
    assert row.expires_at - row.created_at == timedelta(days=7)


def test_validate(store, user_id):
    raw = store.create(user_id)
    assert store.validate(raw).user_id == user_id
    assert store.validate("unknown") is None
    assert store.validate("") is None
    assert store.validate(raw, now=utcnow() + timedelta(days=8)) is None


def test_rotate_once_only(store, user_id):
    raw = store.create(user_id)
    rotation = store.rotate(raw)
    assert rotation is not None
    assert rotation.user_id == user_id
    assert rotation.token != raw
    assert store.validate(rotation.token) is not None
    assert store.validate(raw) is None

    assert store.rotate(raw) is None


def test_replay_is_logged(store, user_id, caplog):
    raw = store.create(user_id)
    store.rotate(raw)
    with caplog.at_level(logging.WARNING, logger="services.session_store"):
        assert store.rotate(raw) is None
    assert "replay" in caplog.text


def test_rotate_expired_writes_nothing(services, store, user_id):
    raw = store.create(user_id)
    assert store.rotate(raw, now=utcnow() + timedelta(days=8)) is None
    [row] = _rows(services)
    assert row.revoked_at is None


def test_rotate_unknown_token(store):
    assert store.rotate("never-issued") is None
    assert store.rotate("") is None


def test_revoke_is_permanent(store, user_id):
    raw = store.create(user_id)
    assert store.revoke(raw) is True
    assert store.revoke(raw) is False
    assert store.validate(raw) is None
    assert store.rotate(raw) is None
    assert store.revoke("unknown") is False


def test_revoke_all(store, user_id, app):
    other_id = create_user(app, "other@example.com")
    first, second = store.create(user_id), store.create(user_id)
    keep = store.create(other_id)

    assert store.revoke_all(user_id) == 2
    assert store.validate(first) is None
    assert store.validate(second) is None
    assert store.validate(keep) is not None
    assert store.revoke_all(user_id) == 0


def test_list_active_newest_first(store, user_id):
    now = utcnow()
    old = store.create(user_id, DeviceInfo(user_agent="old"), now=now - timedelta(hours=2))
    store.create(user_id, DeviceInfo(user_agent="new"), now=now)
    revoked = store.create(user_id, DeviceInfo(user_agent="gone"), now=now)
    store.revoke(revoked)

    active = store.list_active(user_id)
    assert [r.user_agent for r in active] == ["new", "old"]
    assert active[1].token_hash == hash_secret(old)


def test_sweep_removes_revoked_and_expired(services, store, user_id):
    live = store.create(user_id)
    store.revoke(store.create(user_id))
    store.create(user_id, now=utcnow() - timedelta(days=8))

    assert store.sweep_expired() == 2
    [row] = _rows(services)
    assert row.token_hash == hash_secret(live)


def test_concurrent_rotation_has_one_winner(app, store, user_id):
    raw = store.create(user_id)
    outcomes = run_concurrently(app, lambda _: store.rotate(raw), 4)

    assert not [o for o in outcomes if isinstance(o, Exception)]
    winners = [o for o in outcomes if o is not None]
    assert len(winners) == 1
    assert store.validate(winners[0].token).user_id == user_id
    assert store.validate(raw) is None
    assert len(store.list_active(user_id)) == 1
