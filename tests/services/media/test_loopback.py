"""Tests for the in-memory loopback engine."""

from unittest.mock import MagicMock

import pytest

from camrelay.schemas import CodecSettings
from camrelay.services.media.loopback import EngineError, LoopbackEngine


@pytest.fixture
def codec() -> CodecSettings:
    return CodecSettings()


@pytest.fixture
async def router(codec):
    worker = await LoopbackEngine().create_worker(log_level="warn", log_tags=["rtp"])
    router = await worker.create_router(media_codecs=codec.router_media_codecs())
    yield router
    await worker.close()


@pytest.fixture
async def plain(router):
    return await router.create_plain_transport(listen_ip="127.0.0.1", rtcp_mux=False, comedia=True)


class TestPlainTransport:
    async def test_tuple_fires_on_new_remote(self, plain):
        handler = MagicMock()
        plain.on("tuple", handler)

        plain.receive_rtp_from("10.0.0.1", 5004)
        plain.receive_rtp_from("10.0.0.1", 5004)
        plain.receive_rtp_from("10.0.0.1", 5006)

        assert handler.call_count == 2
        assert plain.tuple.remote_port == 5006

    async def test_rtcp_port_without_mux(self, plain):
        assert plain.rtcp_tuple.local_port != plain.tuple.local_port

    async def test_produce_requires_encodings(self, plain, codec):
        params = codec.producer_rtp_parameters()
        params["encodings"] = []

        with pytest.raises(EngineError):
            await plain.produce(kind="video", rtp_parameters=params)


class TestProducer:
    async def test_stats_track_fed_packets(self, plain, codec):
        producer = await plain.produce(kind="video", rtp_parameters=codec.producer_rtp_parameters())

        producer.feed(packets=3)
        stats = await producer.get_stats()

        assert stats[0]["packetCount"] == 3
        assert stats[0]["ssrc"] == 22222222

    async def test_close_cascades_to_consumers(self, router, plain, codec):
        producer = await plain.produce(kind="video", rtp_parameters=codec.producer_rtp_parameters())
        transport = await router.create_webrtc_transport(listen_ips=[{"ip": "0.0.0.0"}])
        consumer = await transport.consume(
            producer_id=producer.id, rtp_capabilities=router.rtp_capabilities, paused=True
        )
        handler = MagicMock()
        consumer.on("producerclose", handler)

        await producer.close()

        assert consumer.closed is True
        handler.assert_called_once_with()
        with pytest.raises(EngineError):
            await producer.get_stats()

    async def test_end_track_fires_event(self, plain, codec):
        producer = await plain.produce(kind="video", rtp_parameters=codec.producer_rtp_parameters())
        handler = MagicMock()
        producer.on("trackended", handler)

        producer.end_track()

        handler.assert_called_once_with()


class TestWebRtcTransport:
    async def test_connect_once(self, router):
        transport = await router.create_webrtc_transport(listen_ips=[{"ip": "0.0.0.0"}])
        dtls = {"fingerprints": [{"algorithm": "sha-256", "value": "AA"}]}

        await transport.connect(dtls_parameters=dtls)

        assert transport.connected is True
        with pytest.raises(EngineError):
            await transport.connect(dtls_parameters=dtls)

    async def test_consume_unknown_producer(self, router):
        transport = await router.create_webrtc_transport(listen_ips=[{"ip": "0.0.0.0"}])

        with pytest.raises(EngineError):
            await transport.consume(producer_id="missing", rtp_capabilities=router.rtp_capabilities)

    async def test_paused_consumer_resume(self, router, plain, codec):
        producer = await plain.produce(kind="video", rtp_parameters=codec.producer_rtp_parameters())
        transport = await router.create_webrtc_transport(listen_ips=[{"ip": "0.0.0.0"}])
        consumer = await transport.consume(
            producer_id=producer.id, rtp_capabilities=router.rtp_capabilities, paused=True
        )

        await consumer.resume()
        await consumer.resume()

        assert consumer.paused is False
        assert consumer.resume_count == 1

    async def test_close_closes_consumers(self, router, plain, codec):
        producer = await plain.produce(kind="video", rtp_parameters=codec.producer_rtp_parameters())
        transport = await router.create_webrtc_transport(listen_ips=[{"ip": "0.0.0.0"}])
        consumer = await transport.consume(producer_id=producer.id, rtp_capabilities=router.rtp_capabilities)

        await transport.close()

        assert consumer.closed is True
        with pytest.raises(EngineError):
            await consumer.resume()
