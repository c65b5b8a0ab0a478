"""
Pytest configuration and fixtures for blob server tests.
"""

from __future__ import annotations

import base64
import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from bss.api.server import create_app
from bss.config import Settings, clear_settings_cache
from bss.storage.file_store import FileObjectStore
from bss.storage.memory import InMemoryObjectStore
from bss.types import ServerPolicy

OWNER = "a" * 64
OTHER = "b" * 64
SIG = "c" * 128


class FakeClock:
    """Controllable time source shared by engines, verifier and stores."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def encode_event(event: dict[str, Any]) -> str:
    """Encode an event dict as an Authorization header value."""
    payload = base64.b64encode(json.dumps(event).encode("utf-8")).decode("ascii")
    return f"Nostr {payload}"


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fixed clock at a whole second."""
    return FakeClock(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> ServerPolicy:
    """Provide the default policy with no allow-list."""
    return ServerPolicy()


@pytest.fixture
def make_auth(clock: FakeClock) -> Callable[..., str]:
    """Build Authorization header values for a kind 24242 event.

    Keyword overrides replace event fields; pass a field as None to drop it.
    """

    def _make(pubkey: str = OWNER, age_seconds: int = 0, **overrides: Any) -> str:
        event: dict[str, Any] = {
            "id": "d" * 64,
            "kind": 24242,
            "pubkey": pubkey,
            "created_at": int(clock().timestamp()) - age_seconds,
            "tags": [["t", "upload"]],
            "content": "Upload blob",
            "sig": SIG,
        }
        event.update(overrides)
        return encode_event({k: v for k, v in event.items() if v is not None})

    return _make


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryObjectStore:
    """Provide an empty in-memory object store on the fake clock."""
    return InMemoryObjectStore(clock=clock)


@pytest.fixture
async def file_store(temp_dir: Path, clock: FakeClock) -> AsyncGenerator[FileObjectStore, None]:
    """Create an initialized file object store for testing."""
    store = FileObjectStore(temp_dir / "store", clock=clock)
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def api_settings(temp_dir: Path) -> Settings:
    """Provide Settings that ignore the environment's .env file."""
    return Settings(_env_file=None, STORAGE_DIR=temp_dir / "store", MAX_FILE_SIZE=4096)


@pytest.fixture
def client(
    api_settings: Settings,
    memory_store: InMemoryObjectStore,
    clock: FakeClock,
) -> Generator[TestClient, None, None]:
    """Provide a TestClient over an in-memory store."""
    app = create_app(settings=api_settings, store=memory_store, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "ALLOWED_PUBKEYS": f"{OWNER}, {OTHER}",
        "ALLOWED_MIME_TYPES": "image/png,text/plain",
        "MAX_FILE_SIZE": "2048",
        "STORAGE_DIR": ".test_store",
        "PUBLIC_BASE_URL": "https://cdn.example.com/",
        "SWEEP_INTERVAL_SECONDS": "60",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
