"""Tests for configuration loading."""

import pytest

from camrelay.app_config import AppEnvironConfig, get_app_environ_config
from camrelay.schemas import CodecSettings
from camrelay.shared.config import EnvironConfig, config


class TestEnvironConfig:
    def test_singleton(self):
        assert EnvironConfig() is config

    def test_env_example_defaults_loaded(self):
        assert config.get("PRODUCER_SSRC") == "22222222"

    def test_getitem(self):
        assert config["PRODUCER_MIME_TYPE"] == "video/H264"

    def test_getitem_missing_key_raises(self):
        with pytest.raises(KeyError):
            config["NOT_A_REAL_KEY"]

    def test_missing_key_default(self):
        assert config.get("NOT_A_REAL_KEY", "fallback") == "fallback"

    def test_cors_origins_default(self, monkeypatch):
        monkeypatch.setitem(config._config, "API_CORS_ORIGINS", "https://a.example, https://b.example")

        assert config.get_cors_origins() == ["https://a.example", "https://b.example"]


class TestAppEnvironConfig:
    def test_defaults(self):
        cfg = get_app_environ_config()

        assert cfg.LIVENESS_STALL_THRESHOLD == 3
        assert cfg.LIVENESS_INTERVAL_SECONDS == 5
        assert cfg.PRODUCER_PAYLOAD_TYPE == 96
        assert cfg.MEDIA_ENGINE_FACTORY.endswith(":create_loopback_engine")
        assert "rtp" in cfg.ENGINE_LOG_TAGS

    def test_codec_settings_from_config(self):
        cfg = AppEnvironConfig(PRODUCER_SSRC=1234, PRODUCER_PROFILE_LEVEL_ID="640028")

        codec = CodecSettings.from_config(cfg)

        assert codec.producer_rtp_parameters()["encodings"] == [{"ssrc": 1234}]
        assert codec.router_media_codecs()[0]["parameters"]["profile-level-id"] == "640028"
