"""Tests for DispatchConfig defaults, validation and environment loading."""

import pytest

from dispatch.config import FCM_LEGACY_ENDPOINT, DispatchConfig
from dispatch.errors import ConfigurationError


class TestDefaults:
    def test_defaults(self):
        config = DispatchConfig()
        assert config.server_key is None
        assert config.endpoint == FCM_LEGACY_ENDPOINT
        assert config.max_batch_size == 500
        assert config.max_attempts == 5
        assert config.max_concurrency == 8

    def test_config_is_immutable(self):
        config = DispatchConfig()
        with pytest.raises(AttributeError):
            config.max_attempts = 2


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_batch_size": 0},
            {"max_batch_size": 1001},
            {"max_attempts": 0},
            {"base_delay": -1},
            {"base_delay": 5, "max_delay": 1},
            {"call_timeout": 0},
            {"max_concurrency": 0},
        ],
    )
    def test_rejects_out_of_range_values(self, overrides):
        with pytest.raises(ConfigurationError):
            DispatchConfig(**overrides)


class TestFromEnv:
    def test_reads_environment(self):
        config = DispatchConfig.from_env(
            {
                "FCM_SERVER_KEY": "secret",
                "PUSH_MAX_BATCH_SIZE": "100",
                "PUSH_MAX_ATTEMPTS": "3",
                "PUSH_BASE_DELAY": "0.25",
                "PUSH_CALL_TIMEOUT": "2.5",
            }
        )
        assert config.server_key == "secret"
        assert config.max_batch_size == 100
        assert config.max_attempts == 3
        assert config.base_delay == 0.25
        assert config.call_timeout == 2.5

    def test_missing_values_fall_back_to_defaults(self):
        assert DispatchConfig.from_env({}) == DispatchConfig()

    def test_blank_server_key_means_none(self):
        assert DispatchConfig.from_env({"FCM_SERVER_KEY": ""}).server_key is None

    def test_unparseable_value_raises(self):
        with pytest.raises(ConfigurationError, match="PUSH_MAX_ATTEMPTS"):
            DispatchConfig.from_env({"PUSH_MAX_ATTEMPTS": "five"})

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("PUSH_MAX_CONCURRENCY", "2")
        assert DispatchConfig.from_env().max_concurrency == 2
