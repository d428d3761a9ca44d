from __future__ import annotations

from typing import Any, Callable

import pytest

from ordernotify.core.config import Settings, get_settings
from ordernotify.services.telemetry import reset_telemetry


@pytest.fixture(autouse=True)
def isolate_shared_state() -> None:
    # Settings cache and telemetry buffers are process-wide; reset them around every test.
    get_settings.cache_clear()
    reset_telemetry()
    yield
    get_settings.cache_clear()
    reset_telemetry()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    # Ignore .env so local developer config never leaks into assertions.
    def _make(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make
