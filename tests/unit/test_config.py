"""
Unit tests for configuration loading.
"""

from decimal import Decimal

import pytest

from penny.core.config import AuctionConfig, load_config
from penny.core.errors import ConfigError

ENV_VARS = [
    "PENNY_BID_FEE",
    "PENNY_BID_INCREMENT",
    "PENNY_STARTING_PRICE",
    "PENNY_DEFAULT_BUDGET",
    "PENNY_COUNTDOWN_WINDOW",
    "PENNY_TICK_INTERVAL",
    "PENNY_ASSET",
    "PENNY_WEIGHTS",
    "PENNY_QUORUM",
    "PENNY_APPLICATION_ID",
    "PENNY_HISTORY_SIZE",
    "OPERATOR_PRIVATE_KEY",
    "PENNY_LOG_DIR",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        # setenv first so values loaded from a .env file are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


class TestAuctionConfig:
    """Tests for config defaults and validation."""

    def test_defaults(self):
        config = AuctionConfig()
        assert config.bid_fee == Decimal("1.00")
        assert config.bid_increment == Decimal("0.01")
        assert config.starting_price == Decimal("0.05")
        assert config.countdown_window == 15
        assert config.asset == "ytest.usd"
        assert config.weights == (40, 40, 50)
        assert config.quorum == 80
        assert config.application_id == "PennyAuction"
        assert config.minimum_budget == Decimal("1.05")

    def test_amounts_normalized(self):
        config = AuctionConfig(bid_fee="2", starting_price=0.1)
        assert config.bid_fee == Decimal("2.00")
        assert config.starting_price == Decimal("0.10")

    @pytest.mark.parametrize("kwargs", [
        {"bid_fee": "0"},
        {"bid_increment": "-0.01"},
        {"starting_price": "-1"},
        {"countdown_window": 0},
        {"tick_interval": 0},
        {"history_size": 0},
        {"weights": (40, 40), "quorum": 80},
        {"quorum": 500},
        {"bid_fee": "abc"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            AuctionConfig(**kwargs)

    def test_private_key_hidden_from_repr(self):
        config = AuctionConfig(operator_private_key="0x" + "11" * 32)
        assert "11" * 32 not in repr(config)


class TestLoadConfig:
    """Tests for environment loading."""

    def test_no_overrides(self, clean_env):
        assert load_config() == AuctionConfig()

    def test_env_overrides(self, clean_env):
        clean_env.setenv("PENNY_BID_FEE", "0.50")
        clean_env.setenv("PENNY_COUNTDOWN_WINDOW", "30")
        clean_env.setenv("PENNY_TICK_INTERVAL", "0.25")
        clean_env.setenv("PENNY_WEIGHTS", "10, 45, 45")
        clean_env.setenv("PENNY_QUORUM", "90")
        clean_env.setenv("OPERATOR_PRIVATE_KEY", "0x" + "22" * 32)

        config = load_config()
        assert config.bid_fee == Decimal("0.50")
        assert config.countdown_window == 30
        assert config.tick_interval == 0.25
        assert config.weights == (10, 45, 45)
        assert config.quorum == 90
        assert config.operator_private_key == "0x" + "22" * 32

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "penny.env"
        env_file.write_text("PENNY_ASSET=usdc\nPENNY_APPLICATION_ID=Test\n")

        config = load_config(str(env_file))
        assert config.asset == "usdc"
        assert config.application_id == "Test"

    def test_blank_values_ignored(self, clean_env):
        clean_env.setenv("PENNY_ASSET", "   ")
        assert load_config().asset == "ytest.usd"

    @pytest.mark.parametrize("name,value", [
        ("PENNY_COUNTDOWN_WINDOW", "soon"),
        ("PENNY_TICK_INTERVAL", "fast"),
        ("PENNY_WEIGHTS", "40,forty,50"),
        ("PENNY_QUORUM", "999"),
    ])
    def test_malformed(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ConfigError):
            load_config()
