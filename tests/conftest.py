"""
Pytest configuration and shared fixtures for Mingleo tests.

Fixtures wire the in-memory fakes (tests/fakes) together with a
LocalRealtimeHub so that every store write is echoed as a change event,
the way the managed backend does it.
"""
import pytest

from mingleo.chat.ports.auth_port import AuthUser
from mingleo.config.backend_config import reset_backend_config
from mingleo.config.chat_config import ChatConfig, reset_chat_config
from mingleo.config.push_config import reset_push_config
from mingleo.config.reliability_config import RetryConfig
from mingleo.config.sync_config import SyncConfig, reset_sync_config
from mingleo.infra.realtime.local_hub import LocalRealtimeHub
from mingleo.sync.screens.base_screen import ScreenDependencies
from mingleo.sync.snapshot_fetcher import SnapshotFetcher
from mingleo.sync.subscriber import ChangeEventSubscriber
from tests.fakes.fake_backend import (
    FakeAuthProvider,
    FakeDurableStore,
    FakeObjectStorage,
    FakePushGateway,
)


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_singletons():
    """Each test builds configs from a clean cache."""
    yield
    reset_sync_config()
    reset_backend_config()
    reset_push_config()
    reset_chat_config()


@pytest.fixture
def sync_config():
    return SyncConfig(
        presence_interval_seconds=240,
        presence_window_seconds=300,
        reconnect_max_attempts=3,
        reconnect_initial_delay_ms=0,
        reconnect_max_delay_ms=0,
    )


@pytest.fixture
def chat_config():
    return ChatConfig()


@pytest.fixture
def fast_retry():
    """Retry settings without waiting."""
    return RetryConfig(max_attempts=3, initial_delay_ms=0, max_delay_ms=0, jitter=False)


# =============================================================================
# Backend Fakes
# =============================================================================

@pytest.fixture
def hub():
    return LocalRealtimeHub()


@pytest.fixture
def store(hub):
    return FakeDurableStore(hub)


@pytest.fixture
def storage():
    return FakeObjectStorage()


@pytest.fixture
def auth():
    return FakeAuthProvider()


@pytest.fixture
def push_gateway():
    return FakePushGateway()


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def alice(store):
    store.seed("users", {"id": "user-alice", "email": "alice@example.com", "display_name": "Alice"})
    return AuthUser(id="user-alice", email="alice@example.com", user_metadata={"display_name": "Alice"})


@pytest.fixture
def bob(store):
    store.seed("users", {"id": "user-bob", "email": "bob@example.com", "display_name": "Bob"})
    return AuthUser(id="user-bob", email="bob@example.com", user_metadata={"display_name": "Bob"})


# =============================================================================
# Sync Wiring
# =============================================================================

@pytest.fixture
def subscriber(hub, sync_config):
    return ChangeEventSubscriber(hub, sync_config.reconnect_retry())


@pytest.fixture
def deps(store, storage, subscriber, fast_retry, sync_config, chat_config):
    return ScreenDependencies(
        store=store,
        storage=storage,
        subscriber=subscriber,
        fetcher=SnapshotFetcher(store, fast_retry),
        sync_config=sync_config,
        chat_config=chat_config,
    )
