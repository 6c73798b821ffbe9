"""Tests for CapabilityNegotiator."""

import pytest

from camrelay.domain.relay.capabilities import CapabilityNegotiator
from camrelay.services.media.media_service import MediaService
from camrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class TestGetCapabilities:
    def test_not_ready_before_bootstrap(self, cfg, engine):
        """Test capabilities are unavailable until the router exists."""
        negotiator = CapabilityNegotiator(MediaService(cfg, engine=engine))

        assert negotiator.is_available is False
        with pytest.raises(AppError) as exc_info:
            negotiator.get_capabilities()

        assert exc_info.value.errcode == AppErrorCode.E_NOT_READY.value
        assert exc_info.value.status_code == HttpStatusCode.SERVICE_UNAVAILABLE

    async def test_returns_router_capabilities(self, media):
        """Test the router codec list is exposed once ready."""
        negotiator = CapabilityNegotiator(media)

        capabilities = negotiator.get_capabilities()

        assert negotiator.is_available is True
        assert [codec["mimeType"] for codec in capabilities["codecs"]] == ["video/H264"]
        assert capabilities["codecs"][0]["parameters"]["profile-level-id"] == "42e01f"

    async def test_returns_copy(self, media):
        """Test a viewer cannot mutate the shared descriptor."""
        negotiator = CapabilityNegotiator(media)

        negotiator.get_capabilities()["codecs"].clear()

        assert len(negotiator.get_capabilities()["codecs"]) == 1
