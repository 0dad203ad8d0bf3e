"""Configuration loader: reads a YAML engine config, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from .core import DEFAULT_FEED_DECIMALS, ConfigurationMismatch, Custody, DebtToken, PriceOracle
from .engine import CollateralEngine
from .price_feeds import DEFAULT_STALE_AFTER, TimeSeriesPriceOracle

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetConfig:
    asset_id: str = ""
    feed: str = ""
    feed_decimals: int = DEFAULT_FEED_DECIMALS


@dataclass(frozen=True)
class OracleConfig:
    stale_after_seconds: int = int(DEFAULT_STALE_AFTER.total_seconds())

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.stale_after_seconds)


@dataclass(frozen=True)
class EngineConfig:
    name: str = "engine"
    verbose: bool = True
    assets: Tuple[AssetConfig, ...] = ()
    oracle: OracleConfig = field(default_factory=OracleConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_assets(raw: List[Dict[str, Any]]) -> Tuple[AssetConfig, ...]:
    assets: List[AssetConfig] = []
    for a in raw:
        assets.append(
            AssetConfig(
                asset_id=str(a.get("id", "")),
                feed=str(a.get("feed", "")),
                feed_decimals=_as_int(
                    a.get("feed_decimals", DEFAULT_FEED_DECIMALS),
                    f"assets[{a.get('id', '')}].feed_decimals",
                ),
            )
        )
    return tuple(assets)


def _build_oracle(raw: Dict[str, Any]) -> OracleConfig:
    return OracleConfig(
        stale_after_seconds=_as_int(
            raw.get("stale_after_seconds", OracleConfig.stale_after_seconds),
            "oracle.stale_after_seconds",
        ),
    )


def _as_int(value: Any, field_name: str) -> int:
    """Convert a YAML scalar to int, reporting the offending field on failure."""
    if isinstance(value, bool):
        raise ConfigurationMismatch(f"{field_name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationMismatch(f"{field_name} must be an integer, got {value!r}") from None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_config(raw: Optional[Dict[str, Any]]) -> EngineConfig:
    """Build and validate an EngineConfig from an already-parsed mapping."""
    raw = _interpolate_env(raw or {})
    engine_raw = raw.get("engine", {}) or {}
    cfg = EngineConfig(
        name=str(engine_raw.get("name", "engine")),
        verbose=_as_bool(engine_raw.get("verbose", True)),
        assets=_build_assets(raw.get("assets", []) or []),
        oracle=_build_oracle(raw.get("oracle", {}) or {}),
    )
    _validate(cfg)
    return cfg


def load_config(config_path: Union[str, Path]) -> EngineConfig:
    """Load and validate engine configuration from YAML + .env.

    Args:
        config_path: Path to the YAML file.
    """
    load_dotenv()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    cfg = parse_config(raw)
    logger.info("Configuration loaded from %s (%d assets)", config_path, len(cfg.assets))
    return cfg


def _validate(cfg: EngineConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.name:
        raise ConfigurationMismatch("Engine name cannot be empty")
    if cfg.oracle.stale_after_seconds <= 0:
        raise ConfigurationMismatch("oracle.stale_after_seconds must be positive")
    seen = set()
    for asset in cfg.assets:
        if not asset.asset_id:
            raise ConfigurationMismatch("Asset entry has no id")
        if not asset.feed:
            raise ConfigurationMismatch(f"Asset '{asset.asset_id}' has no feed")
        if not 0 <= asset.feed_decimals <= 18:
            raise ConfigurationMismatch(
                f"assets[{asset.asset_id}].feed_decimals must be in 0..18, got {asset.feed_decimals}"
            )
        if asset.asset_id in seen:
            raise ConfigurationMismatch(f"Asset '{asset.asset_id}' listed twice")
        seen.add(asset.asset_id)


def build_price_oracle(cfg: EngineConfig) -> TimeSeriesPriceOracle:
    """Create an empty time-series oracle honouring the configured staleness timeout."""
    return TimeSeriesPriceOracle(stale_after=cfg.oracle.stale_after)


def build_engine(
    cfg: EngineConfig,
    feeds: Mapping[str, PriceOracle],
    debt_token: DebtToken,
    custody: Custody,
) -> CollateralEngine:
    """Construct a CollateralEngine, resolving each asset's feed name in `feeds`."""
    missing = sorted({a.feed for a in cfg.assets} - set(feeds))
    if missing:
        raise ConfigurationMismatch(f"No oracle supplied for feeds: {missing}")
    return CollateralEngine(
        [a.asset_id for a in cfg.assets],
        [feeds[a.feed] for a in cfg.assets],
        debt_token,
        custody,
        feed_decimals={a.asset_id: a.feed_decimals for a in cfg.assets},
        name=cfg.name,
        verbose=cfg.verbose,
    )
