"""Registry of viewer-facing transports."""

from dataclasses import dataclass

from loguru import logger

from camrelay.services.media.engine import WebRtcTransport
from camrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


@dataclass
class RegisteredTransport:
    """A viewer transport together with its owning session and connect state."""

    transport: WebRtcTransport
    owner_sid: str
    connected: bool = False

    @property
    def id(self) -> str:
        return self.transport.id


class TransportRegistry:
    """Authority for the existence of viewer transports, keyed by engine-assigned id.

    Entries are only mutated from the owning viewer session and from its
    disconnect cleanup; all of that runs on the event loop, so no lock is held.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RegisteredTransport] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, transport_id: object) -> bool:
        return transport_id in self._entries

    def register(self, entry: RegisteredTransport) -> None:
        """Insert a transport.

        Raises:
            AppError: E_DUPLICATE_IDENTIFIER if the id is already registered.
                Engine ids are unique, so this is an invariant violation.
        """
        if entry.id in self._entries:
            logger.critical(f"Duplicate transport id registered: {entry.id}")
            raise AppError(
                errcode=AppErrorCode.E_DUPLICATE_IDENTIFIER,
                errmesg=f"Transport {entry.id} is already registered",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            )
        self._entries[entry.id] = entry
        logger.debug(f"Transport registered: id={entry.id} owner={entry.owner_sid}")

    def lookup(self, transport_id: str) -> RegisteredTransport | None:
        return self._entries.get(transport_id)

    def remove(self, transport_id: str) -> RegisteredTransport | None:
        """Remove a transport; removing an unknown id is a no-op."""
        entry = self._entries.pop(transport_id, None)
        if entry is not None:
            logger.debug(f"Transport removed: id={transport_id} owner={entry.owner_sid}")
        return entry

    def owned_by(self, owner_sid: str) -> list[RegisteredTransport]:
        return [entry for entry in self._entries.values() if entry.owner_sid == owner_sid]
