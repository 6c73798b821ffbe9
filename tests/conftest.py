import asyncio
import warnings
from collections.abc import Callable

import pytest
import pytest_asyncio

from camrelay.app_config import AppEnvironConfig
from camrelay.domain.relay import RelayCoordinator
from camrelay.services.media.loopback import LoopbackEngine
from camrelay.services.media.media_service import MediaService

warnings.filterwarnings("ignore", category=DeprecationWarning, module="engineio.*")


@pytest.fixture
def cfg() -> AppEnvironConfig:
    """Config with a long liveness interval; stall tests drive sampling or use their own timers."""
    return AppEnvironConfig(
        ENGINE_CALL_TIMEOUT_SECONDS=1.0,
        LIVENESS_INTERVAL_SECONDS=60,
        LIVENESS_STALL_THRESHOLD=3,
        RTC_LISTEN_IP="0.0.0.0",
        RTC_ANNOUNCED_IP="127.0.0.1",
        RTC_PLAIN_LISTEN_IP="127.0.0.1",
    )


@pytest.fixture
def engine() -> LoopbackEngine:
    return LoopbackEngine()


@pytest_asyncio.fixture
async def media(cfg: AppEnvironConfig, engine: LoopbackEngine):
    """Bootstrapped media service on the loopback engine."""
    service = MediaService(cfg, engine=engine)
    await service.bootstrap()
    yield service
    await service.shutdown()


@pytest_asyncio.fixture
async def coordinator(cfg: AppEnvironConfig, engine: LoopbackEngine):
    """Started relay coordinator on the loopback engine."""
    relay = RelayCoordinator(MediaService(cfg, engine=engine), cfg)
    await relay.start()
    yield relay
    await relay.shutdown()


@pytest.fixture
def viewer_rtp_capabilities() -> dict:
    """Device capabilities of a browser that can decode H264."""
    return {
        "codecs": [
            {
                "kind": "video",
                "mimeType": "video/H264",
                "clockRate": 90000,
                "parameters": {"packetization-mode": 1, "profile-level-id": "42e01f"},
            }
        ],
        "headerExtensions": [],
    }


@pytest.fixture
def dtls_parameters() -> dict:
    return {
        "role": "client",
        "fingerprints": [{"algorithm": "sha-256", "value": "AB:CD:EF"}],
    }


@pytest.fixture
def wait_until() -> Callable:
    """Poll a predicate on the event loop until it holds or the timeout elapses."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(0.005)
        return True

    return _wait_until
