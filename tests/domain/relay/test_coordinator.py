"""End-to-end relay scenarios on the loopback engine."""

import asyncio
import contextlib
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from camrelay.app_config import AppEnvironConfig
from camrelay.domain.relay import MEDIA_STOPPED_EVENT, RelayCoordinator
from camrelay.schemas import ProducerState
from camrelay.services.media.media_service import MediaService
from camrelay.utils.app_errors import AppError, AppErrorCode


@pytest.fixture
def broadcaster(coordinator) -> AsyncMock:
    broadcast = AsyncMock()
    coordinator.set_broadcaster(broadcast)
    return broadcast


@pytest_asyncio.fixture
async def fast_relay(cfg, engine):
    """Relay sampling liveness every 10ms, with a mocked broadcaster."""
    fast_cfg = cfg.model_copy(update={"LIVENESS_INTERVAL_SECONDS": 0.01})
    relay = RelayCoordinator(MediaService(fast_cfg, engine=engine), fast_cfg)
    relay.set_broadcaster(AsyncMock())
    await relay.start()
    yield relay
    await relay.shutdown()


async def _feed_forever(producer, period: float = 0.002):
    while True:
        producer.feed(packets=10)
        await asyncio.sleep(period)


class TestStart:
    async def test_start_publishes_router_and_ingest(self, coordinator):
        status = coordinator.status()

        assert status.router_ready is True
        assert status.producer_state == ProducerState.AWAITING_SOURCE
        assert status.is_expecting_producer is True
        assert status.ingest is not None
        assert status.ingest.listen_ip == "127.0.0.1"
        assert status.ingest.rtcp_port is not None

    async def test_start_failure_raises(self, cfg, engine):
        """Test engine bootstrap failure is fatal."""
        engine.create_worker = AsyncMock(side_effect=RuntimeError("no worker binary"))
        relay = RelayCoordinator(MediaService(cfg, engine=engine), cfg)

        with pytest.raises(AppError) as exc_info:
            await relay.start()

        assert exc_info.value.errcode == AppErrorCode.E_ENGINE_CALL_FAILED.value
        assert relay.status().router_ready is False


class TestLivenessScenario:
    async def test_flowing_stream_stays_alive_then_stalls(self, fast_relay, wait_until):
        """Inbound stream -> producer kept alive while packets grow -> closed and broadcast on stall."""
        broadcaster = fast_relay._broadcaster
        fast_relay.media.plain_transport.receive_rtp_from("192.168.1.20", 5004)
        assert await wait_until(lambda: fast_relay.producers.producer is not None)
        producer = fast_relay.producers.producer
        assert fast_relay.producers.is_expecting_producer is False

        feeder = asyncio.create_task(_feed_forever(producer))
        await asyncio.sleep(0.1)

        assert fast_relay.producers.producer is producer
        assert fast_relay.producers.producers_closed == 0
        broadcaster.assert_not_awaited()

        feeder.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await feeder

        assert await wait_until(lambda: broadcaster.await_count == 1)
        broadcaster.assert_awaited_once_with(MEDIA_STOPPED_EVENT, {"producerId": producer.id, "reason": "stalled"})
        assert fast_relay.producers.is_expecting_producer is True
        assert producer.closed is True

        await asyncio.sleep(0.05)
        assert broadcaster.await_count == 1

    async def test_restarted_source_creates_new_producer(self, fast_relay, wait_until):
        """Stalled source comes back from a new port and gets a fresh producer."""
        fast_relay.media.plain_transport.receive_rtp_from("192.168.1.20", 5004)
        assert await wait_until(lambda: fast_relay.producers.producer is not None)
        first = fast_relay.producers.producer
        assert await wait_until(lambda: fast_relay.producers.is_expecting_producer)

        fast_relay.media.plain_transport.receive_rtp_from("192.168.1.20", 5006)

        assert await wait_until(lambda: fast_relay.producers.producers_created == 2)
        assert fast_relay.producers.producer is None or fast_relay.producers.producer.id != first.id


class TestViewerScenarios:
    async def test_viewer_full_sequence_then_disconnect(
        self, coordinator, dtls_parameters, viewer_rtp_capabilities
    ):
        """Viewer A: capabilities, transport, connect, paused consume, ack resumes, disconnect cleans up."""
        producer = await coordinator.producers.on_inbound_stream()
        session = coordinator.open_session("viewer-a")

        assert session.get_capabilities()["codecs"]
        transport = await session.create_transport()
        await session.connect_transport(transport.id, dtls_parameters)
        consumer_out = await session.consume(transport.id, viewer_rtp_capabilities)
        consumer = session.pending_consumer
        assert consumer_out.producer_id == producer.id
        assert consumer.paused is True

        await session.acknowledge_consumer()
        assert consumer.paused is False

        await coordinator.close_session("viewer-a")

        assert coordinator.registry.lookup(transport.id) is None
        assert coordinator.get_session("viewer-a") is None
        assert coordinator.producers.producer is producer

    async def test_consume_before_producer(self, coordinator, dtls_parameters, viewer_rtp_capabilities):
        """Viewer B: consume with no producer gets the no-producer error and nothing is created."""
        session = coordinator.open_session("viewer-b")
        transport = await session.create_transport()
        await session.connect_transport(transport.id, dtls_parameters)

        with pytest.raises(AppError) as exc_info:
            await session.consume(transport.id, viewer_rtp_capabilities)

        assert exc_info.value.errmesg == "No producer yet"
        assert session.consumers == {}
        assert coordinator.status().transports == 1

    async def test_one_viewer_failure_does_not_affect_another(
        self, coordinator, dtls_parameters, viewer_rtp_capabilities
    ):
        await coordinator.producers.on_inbound_stream()
        good = coordinator.open_session("good")
        bad = coordinator.open_session("bad")
        transport = await good.create_transport()
        await good.connect_transport(transport.id, dtls_parameters)

        with pytest.raises(AppError):
            await bad.consume("bogus", viewer_rtp_capabilities)
        await good.consume(transport.id, viewer_rtp_capabilities)

        assert good.pending_consumer is not None
        assert coordinator.producers.state == ProducerState.ACTIVE


class TestSessions:
    async def test_open_session_is_idempotent(self, coordinator):
        first = coordinator.open_session("sid")

        assert coordinator.open_session("sid") is first
        assert coordinator.session_count == 1

    async def test_close_unknown_session_is_noop(self, coordinator):
        await coordinator.close_session("nobody")

        assert coordinator.session_count == 0

    async def test_status_counts(self, coordinator):
        session = coordinator.open_session("sid")
        await session.create_transport()
        await session.create_transport()

        status = coordinator.status()

        assert status.viewers == 1
        assert status.transports == 2


class TestMediaStopped:
    async def test_broadcasts_on_track_end(self, coordinator, broadcaster, wait_until):
        producer = await coordinator.producers.on_inbound_stream()

        producer.end_track()

        assert await wait_until(lambda: broadcaster.await_count == 1)
        broadcaster.assert_awaited_once_with(
            MEDIA_STOPPED_EVENT, {"producerId": producer.id, "reason": "track_ended"}
        )

    async def test_without_broadcaster_does_not_raise(self, coordinator):
        producer = await coordinator.producers.on_inbound_stream()

        assert await coordinator.producers.on_stall(producer.id) is True
        assert coordinator.producers.is_expecting_producer is True


class TestShutdown:
    async def test_closes_sessions_and_producer(self, cfg, engine):
        relay = RelayCoordinator(MediaService(cfg, engine=engine), cfg)
        await relay.start()
        producer = await relay.producers.on_inbound_stream()
        session = relay.open_session("sid")
        transport = await session.create_transport()

        await relay.shutdown()

        assert session.closed is True
        assert relay.registry.lookup(transport.id) is None
        assert producer.closed is True
        assert relay.status().router_ready is False


class TestConfig:
    def test_liveness_policy_from_config(self, engine):
        cfg = AppEnvironConfig(LIVENESS_INTERVAL_SECONDS=1.5, LIVENESS_STALL_THRESHOLD=7)
        relay = RelayCoordinator(MediaService(cfg, engine=engine), cfg)

        assert relay.producers._liveness_interval == 1.5
        assert relay.producers._stall_threshold == 7
