"""
Auction configuration parameters for Penny Channel.

Defines protocol constants, session governance parameters and operational
settings. Values can be overridden through PENNY_* environment variables
(optionally from a .env file).
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from penny.core.errors import ConfigError
from penny.core.money import to_amount
from penny.utils.validation import validate_weights


@dataclass
class AuctionConfig:
    """Protocol and session configuration"""

    # Protocol constants
    bid_fee: Decimal = Decimal("1.00")          # Paid to the seller on every bid
    bid_increment: Decimal = Decimal("0.01")    # Price step per bid
    starting_price: Decimal = Decimal("0.05")
    default_budget: Decimal = Decimal("100.00")
    countdown_window: int = 15                  # Ticks of silence before expiry
    tick_interval: float = 1.0                  # Seconds per tick

    # Session governance (seller, bidder, operator)
    asset: str = "ytest.usd"
    weights: Tuple[int, int, int] = (40, 40, 50)
    quorum: int = 80
    application_id: str = "PennyAuction"

    # Display
    history_size: int = 8

    # Operational
    operator_private_key: Optional[str] = field(default=None, repr=False)
    log_dir: Path = Path("logs")

    def __post_init__(self):
        """Normalize amounts and reject inconsistent parameters"""
        try:
            self.bid_fee = to_amount(self.bid_fee)
            self.bid_increment = to_amount(self.bid_increment)
            self.starting_price = to_amount(self.starting_price)
            self.default_budget = to_amount(self.default_budget)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        if self.bid_fee <= 0:
            raise ConfigError(f"bid_fee must be positive, got {self.bid_fee}")
        if self.bid_increment <= 0:
            raise ConfigError(f"bid_increment must be positive, got {self.bid_increment}")
        if self.starting_price < 0:
            raise ConfigError(f"starting_price must be >= 0, got {self.starting_price}")
        if self.countdown_window <= 0:
            raise ConfigError(f"countdown_window must be positive, got {self.countdown_window}")
        if self.tick_interval <= 0:
            raise ConfigError(f"tick_interval must be positive, got {self.tick_interval}")
        if self.history_size <= 0:
            raise ConfigError(f"history_size must be positive, got {self.history_size}")

        self.weights = tuple(self.weights)
        valid, err = validate_weights(self.weights, self.quorum)
        if not valid:
            raise ConfigError(err)

        self.log_dir = Path(self.log_dir)

    @property
    def minimum_budget(self) -> Decimal:
        """Budgets at or below this cannot open a session."""
        return self.starting_price + self.bid_fee


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_int(name: str) -> Optional[int]:
    value = _env(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _env_float(name: str) -> Optional[float]:
    value = _env(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _env_weights(name: str) -> Optional[Tuple[int, ...]]:
    value = _env(name)
    if value is None:
        return None
    try:
        return tuple(int(part) for part in value.split(","))
    except ValueError:
        raise ConfigError(f"{name} must be comma-separated integers, got {value!r}") from None


def load_config(env_file: Optional[str] = None) -> AuctionConfig:
    """
    Load configuration from the environment.

    Args:
        env_file: Optional path to a .env file. None searches the usual
            locations; variables already set in the environment win.

    Returns:
        AuctionConfig instance

    Raises:
        ConfigError: If a variable is malformed or parameters are inconsistent
    """
    load_dotenv(env_file)

    overrides = {
        "bid_fee": _env("PENNY_BID_FEE"),
        "bid_increment": _env("PENNY_BID_INCREMENT"),
        "starting_price": _env("PENNY_STARTING_PRICE"),
        "default_budget": _env("PENNY_DEFAULT_BUDGET"),
        "countdown_window": _env_int("PENNY_COUNTDOWN_WINDOW"),
        "tick_interval": _env_float("PENNY_TICK_INTERVAL"),
        "asset": _env("PENNY_ASSET"),
        "weights": _env_weights("PENNY_WEIGHTS"),
        "quorum": _env_int("PENNY_QUORUM"),
        "application_id": _env("PENNY_APPLICATION_ID"),
        "history_size": _env_int("PENNY_HISTORY_SIZE"),
        "operator_private_key": _env("OPERATOR_PRIVATE_KEY"),
        "log_dir": _env("PENNY_LOG_DIR"),
    }

    return AuctionConfig(**{k: v for k, v in overrides.items() if v is not None})
