from typing import Generic, TypeVar

from camrelay.shared.api.utils import ApiSuccess

T = TypeVar("T")


class RelayOut(ApiSuccess, Generic[T]):
    """Standard API envelope used by the relay routers."""

    results: T  # type: ignore[valid-type]
