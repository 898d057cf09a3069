"""
rewardledger.config — YAML Configuration Loader
================================================

**Why this file exists:**
This module reads ``config.yaml`` for **infrastructure-only** settings
(community identity, reference timezone, API port, batch sizing).  Reward
amounts and milestone thresholds live in the database (``coin_rewards_settings``
and ``streak_milestones``) so operators can tune them without a deployment.

Usage::

    from rewardledger.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Best Day Ever"
    print(cfg.timezone)          # "America/Denver"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

DEFAULT_TIMEZONE = "America/Denver"
DEFAULT_BATCH_SIZE = 500


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardsConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Calendar — every daily fence is keyed on this zone's calendar day
    timezone: str = DEFAULT_TIMEZONE

    # API
    api_port: int = 8000

    # Scratch-card batch: users per keyset page
    scratch_card_batch_size: int = DEFAULT_BATCH_SIZE

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> RewardsConfig:
    """Read *path* and return a :class:`RewardsConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``timezone`` is not a valid IANA zone name.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    timezone = raw.get("timezone") or DEFAULT_TIMEZONE
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone in config: {timezone!r}") from exc

    return RewardsConfig(
        community_name=raw["community_name"],
        timezone=timezone,
        api_port=int(raw.get("api_port", 8000)),
        scratch_card_batch_size=int(
            raw.get("scratch_card_batch_size", DEFAULT_BATCH_SIZE)
        ),
    )
