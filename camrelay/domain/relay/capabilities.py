"""Capability negotiation: hands the router's RTP capabilities to viewers."""

import copy
from typing import Any

from camrelay.services.media.media_service import MediaService
from camrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class CapabilityNegotiator:
    """Read-only view of the engine's capability descriptor.

    Holds no state of its own; safe to call from any number of viewers.
    """

    def __init__(self, media: MediaService) -> None:
        self._media = media

    @property
    def is_available(self) -> bool:
        return self._media.rtp_capabilities is not None

    def get_capabilities(self) -> dict[str, Any]:
        """Return a copy of the router RTP capabilities.

        Raises:
            AppError: E_NOT_READY while the engine is still initializing
        """
        capabilities = self._media.rtp_capabilities
        if capabilities is None:
            raise AppError(
                errcode=AppErrorCode.E_NOT_READY,
                errmesg="Router is not initialized yet",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return copy.deepcopy(capabilities)
