"""Pytest configuration for BLE bridge tests."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from blebridge.config.settings import PeripheralConfig, RuntimeConfig  # noqa: E402
from blebridge.state.context import BridgeState, create_bridge_state  # noqa: E402

from mocks import FakeSink, FakeTransport  # noqa: E402

_HAS_PYTEST_ASYNCIO = importlib.util.find_spec("pytest_asyncio") is not None

ONECONTROL_ADDRESS = "24:DC:C3:ED:1E:0A"
EASYTOUCH_ADDRESS = "AA:BB:CC:DD:EE:01"
GOPOWER_ADDRESS = "AA:BB:CC:DD:EE:02"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Fallback asyncio runner when pytest-asyncio is unavailable."""
    if _HAS_PYTEST_ASYNCIO:
        return None
    if "asyncio" not in pyfuncitem.keywords:
        return None
    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
        loop.run_until_complete(test_function(**kwargs))
    finally:
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
        except (RuntimeError, ValueError):
            pass
        loop.close()
        asyncio.set_event_loop(None)
    return True


@pytest.fixture(scope="session")
def event_loop_policy():
    """Provide uvloop event loop policy for pytest-asyncio."""
    import warnings

    import uvloop

    with warnings.catch_warnings():
        warnings.filterwarnings(
            "ignore",
            message=".*AbstractEventLoopPolicy.*",
            category=DeprecationWarning,
        )
        policy = uvloop.EventLoopPolicy()
    logging.info("NOTICE: uvloop event loop policy enabled for tests.")
    return policy


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def logging_mock_level_fix():
    """Ensure all handlers have a numeric level to avoid comparisons with MagicMock."""
    original_handlers = []
    loggers = [logging.getLogger(name) for name in logging.root.manager.loggerDict]
    loggers.append(logging.getLogger())

    for logger in loggers:
        for handler in getattr(logger, "handlers", []):
            if isinstance(handler.level, MagicMock):
                original_handlers.append((handler, handler.level))
                handler.level = logging.NOTSET

    yield

    for handler, level in original_handlers:
        handler.level = level


@pytest.fixture(autouse=True)
def _isolated_config_path(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Never let a test read the system configuration document."""
    monkeypatch.setenv("BLEBRIDGE_CONFIG", str(tmp_path / "missing-config.json"))


@pytest.fixture()
def runtime_config(tmp_path: Path) -> RuntimeConfig:
    return RuntimeConfig(
        mqtt_host="localhost",
        mqtt_topic="homeassistant",
        discovery_prefix="homeassistant",
        mqtt_queue_limit=64,
        watchdog_interval=60.0,
        watchdog_threshold=300.0,
        ble_connect_timeout=5.0,
        name_cache_path=str(tmp_path / "names.json"),
        peripherals=(
            PeripheralConfig(address=ONECONTROL_ADDRESS, family="onecontrol"),
            PeripheralConfig(address=EASYTOUCH_ADDRESS, family="easytouch", password="secret"),
            PeripheralConfig(address=GOPOWER_ADDRESS, family="gopower"),
        ),
    )


@pytest.fixture()
def bridge_state(runtime_config: RuntimeConfig) -> BridgeState:
    return create_bridge_state(runtime_config)


@pytest.fixture()
def fake_sink() -> FakeSink:
    return FakeSink()


@pytest.fixture()
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def onecontrol_peripheral(runtime_config: RuntimeConfig) -> PeripheralConfig:
    return runtime_config.peripherals[0]


@pytest.fixture()
def easytouch_peripheral(runtime_config: RuntimeConfig) -> PeripheralConfig:
    return runtime_config.peripherals[1]


@pytest.fixture()
def gopower_peripheral(runtime_config: RuntimeConfig) -> PeripheralConfig:
    return runtime_config.peripherals[2]
