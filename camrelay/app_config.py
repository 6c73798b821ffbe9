from pydantic import BaseModel

from camrelay.shared.config import config


def _split_csv(raw: str | None) -> list[str]:
    return [x.strip() for x in (raw or "").split(",") if x.strip()]


class AppEnvironConfig(BaseModel):
    # HTTP / signaling server
    API_HOST: str = config.get("API_HOST", "0.0.0.0").strip()  # type: ignore
    API_PORT: int = int((config.get("API_PORT") or "").strip() or 3000)
    DEBUG: bool = (config.get("DEBUG") or "false").strip().lower() == "true"
    # Optional directory holding the browser viewer client, served at "/"
    CLIENT_DIR: str | None = (config.get("CLIENT_DIR") or "").strip() or None

    # Media engine binding ("module:callable" returning a MediaEngine)
    MEDIA_ENGINE_FACTORY: str = (
        config.get("MEDIA_ENGINE_FACTORY") or ""
    ).strip() or "camrelay.services.media.loopback:create_loopback_engine"
    ENGINE_LOG_LEVEL: str = (config.get("ENGINE_LOG_LEVEL") or "").strip() or "warn"
    ENGINE_LOG_TAGS: list[str] = _split_csv(config.get("ENGINE_LOG_TAGS")) or [
        "info",
        "ice",
        "dtls",
        "rtp",
        "srtp",
        "rtcp",
        "rtx",
        "bwe",
        "score",
        "simulcast",
        "svc",
        "sctp",
    ]
    # Upper bound for a single media engine call; None disables the bound
    ENGINE_CALL_TIMEOUT_SECONDS: float | None = float(
        (config.get("ENGINE_CALL_TIMEOUT_SECONDS") or "").strip() or 10
    ) or None

    # Viewer-facing transports
    RTC_LISTEN_IP: str = (config.get("RTC_LISTEN_IP") or "").strip() or "0.0.0.0"
    RTC_ANNOUNCED_IP: str | None = (config.get("RTC_ANNOUNCED_IP") or "").strip() or "127.0.0.1"

    # Upstream (robot) ingest transport
    RTC_PLAIN_LISTEN_IP: str = (config.get("RTC_PLAIN_LISTEN_IP") or "").strip() or "127.0.0.1"

    # Fixed upstream codec descriptor, must match the sender's RTP stream
    PRODUCER_MIME_TYPE: str = (config.get("PRODUCER_MIME_TYPE") or "").strip() or "video/H264"
    PRODUCER_PAYLOAD_TYPE: int = int((config.get("PRODUCER_PAYLOAD_TYPE") or "").strip() or 96)
    PRODUCER_CLOCK_RATE: int = int((config.get("PRODUCER_CLOCK_RATE") or "").strip() or 90000)
    PRODUCER_PACKETIZATION_MODE: int = int(
        (config.get("PRODUCER_PACKETIZATION_MODE") or "").strip() or 1
    )
    PRODUCER_PROFILE_LEVEL_ID: str = (
        config.get("PRODUCER_PROFILE_LEVEL_ID") or ""
    ).strip() or "42e01f"
    PRODUCER_SSRC: int = int((config.get("PRODUCER_SSRC") or "").strip() or 22222222)

    # Liveness policy
    LIVENESS_INTERVAL_SECONDS: float = float(
        (config.get("LIVENESS_INTERVAL_SECONDS") or "").strip() or 5
    )
    LIVENESS_STALL_THRESHOLD: int = int((config.get("LIVENESS_STALL_THRESHOLD") or "").strip() or 3)

    # Observability
    LOGFIRE_ENABLE: bool = (config.get("LOGFIRE_ENABLE") or "false").strip().lower() == "true"
    LOGFIRE_TOKEN: str | None = (config.get("LOGFIRE_TOKEN") or "").strip() or None


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
