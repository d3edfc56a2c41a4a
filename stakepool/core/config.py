"""
Pool configuration parameters for stakepool.

Defines fee parameters, staking limits and logging settings. Values can be
overridden from the environment or a dotenv file with STAKEPOOL_* keys.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values

from stakepool.core.math import ONE_UNIT
from stakepool.utils.validation import (
    require,
    validate_amount,
    validate_integer,
    validate_percent,
)

ENV_PREFIX = "STAKEPOOL_"

# Lowest accepted min_stake (exclusive)
MIN_STAKE_FLOOR = 1_000


@dataclass
class PoolConfig:
    """Pool-wide configuration parameters"""

    # Fees, in hundredths of a percent
    base_unstake_fee: int = 5  # 0.05% charged when redemptions run hot
    unstake_fee_threshold: int = 10  # 0.1% of staked in flight triggers the fee
    base_reward_fee: int = 1000  # 10% of rewards go to the protocol

    # Staking
    min_stake: int = ONE_UNIT  # Smallest accepted deposit
    rewards_threshold: int = 100  # 1% max reward growth per attestation

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_to_file: bool = False

    def __post_init__(self):
        """Validate parameters"""
        require(validate_percent(self.base_unstake_fee, "base_unstake_fee"))
        require(validate_percent(self.unstake_fee_threshold, "unstake_fee_threshold"))
        require(validate_percent(self.base_reward_fee, "base_reward_fee"))
        require(validate_integer(self.rewards_threshold, "rewards_threshold", 1, 10_000))
        require(validate_amount(self.min_stake, "min_stake"))
        if self.min_stake <= MIN_STAKE_FLOOR:
            raise ValueError(f"min_stake must be > {MIN_STAKE_FLOOR}, got {self.min_stake}")
        if logging.getLevelName(self.log_level.upper()) not in range(0, 60):
            raise ValueError(f"Unknown log level: {self.log_level}")
        self.log_dir = Path(self.log_dir)

    @property
    def level(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    def to_dict(self) -> dict:
        data = asdict(self)
        data["log_dir"] = str(self.log_dir)
        return data


def _coerce(value: str, target):
    if target is bool:
        return value.strip().lower() in ("1", "true", "yes", "on")
    if target is int:
        return int(value.replace("_", ""))
    if target is Path:
        return Path(value)
    return value


def load_config(env_file: Optional[str] = None) -> PoolConfig:
    """
    Load configuration from a dotenv file and the environment.

    Environment variables win over the file; unset keys keep their defaults.

    Args:
        env_file: Optional path to a dotenv file

    Returns:
        PoolConfig instance
    """
    values: Dict[str, Optional[str]] = {}
    if env_file:
        values.update(dotenv_values(env_file))
    values.update({k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIX)})

    overrides = {}
    for f in fields(PoolConfig):
        raw = values.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        overrides[f.name] = _coerce(raw, f.type)

    return PoolConfig(**overrides)
