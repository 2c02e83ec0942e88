"""Engine configuration loaded from engine.yaml.

Supports:
- Signal gates (confluence, AI confidence, validation layers, critical layers)
- Confluence weights and kill-zone penalty
- Risk parameters and the account balance used for sizing
- Per-analyzer lookback/threshold overrides
- Backward compatible: no YAML file = built-in defaults
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from signal_core.constants import CONFLUENCE_WEIGHTS, KILL_ZONE_PENALTY
from signal_core.errors import ConfigurationError
from signal_core.models.analysis import Domain
from signal_core.risk import RiskManager

logger = logging.getLogger(__name__)

_DOMAINS = tuple(d.value for d in Domain)


class RiskConfig(BaseModel):
    """Risk parameters handed to the RiskManager."""

    default_risk_percent: float = 1.0
    max_risk_percent: float = 2.0
    min_risk_reward: float = 2.5
    tp_ratios: list[float] = [1.5, 2.5, 4.0]
    partial_close_percents: list[float] = [40, 40, 20]
    atr_multiplier: float = 1.5
    min_sl_pips: float = 10
    max_sl_pips: float = 50
    account_balance: float = 10_000.0

    @model_validator(mode="after")
    def _validate(self):
        if len(self.tp_ratios) != 3 or len(self.partial_close_percents) != 3:
            raise ValueError("tp_ratios and partial_close_percents need exactly three entries")
        if abs(sum(self.partial_close_percents) - 100) > 1e-6:
            raise ValueError("partial_close_percents must sum to 100")
        if not 0 < self.default_risk_percent <= self.max_risk_percent:
            raise ValueError("default_risk_percent must be in (0, max_risk_percent]")
        if not 0 < self.min_sl_pips <= self.max_sl_pips:
            raise ValueError("min_sl_pips must be positive and <= max_sl_pips")
        if self.account_balance <= 0:
            raise ValueError("account_balance must be positive")
        return self

    def to_manager(self) -> RiskManager:
        return RiskManager(
            default_risk_percent=self.default_risk_percent,
            max_risk_percent=self.max_risk_percent,
            min_risk_reward=self.min_risk_reward,
            tp_ratios=self.tp_ratios,
            partial_close_percents=self.partial_close_percents,
            atr_multiplier=self.atr_multiplier,
            min_sl_pips=self.min_sl_pips,
            max_sl_pips=self.max_sl_pips,
        )


class CacheConfig(BaseModel):
    max_size: int = 2000
    default_ttl: float = 300.0
    sweep_interval: float = 30.0

    @field_validator("max_size")
    @classmethod
    def _positive_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_size must be positive")
        return v


class EngineConfig(BaseModel):
    """Top-level engine.yaml configuration."""

    min_confluence_score: int = 80
    min_ai_confidence: int = 70
    min_validation_layers: int = 8
    critical_layers: list[str] = ["smc", "technical", "fundamental"]
    analysis_timeout: float = 60.0
    fetch_retries: int = 2
    bars: int = 500
    enable_caching: bool = True
    kill_zone_penalty: int = KILL_ZONE_PENALTY
    signal_expiration_hours: float = 24.0
    confluence_weights: dict[str, float] = dict(CONFLUENCE_WEIGHTS)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    lookbacks: dict[str, dict[str, Any]] = {}
    cache: CacheConfig = Field(default_factory=CacheConfig)

    @field_validator("min_confluence_score", "min_ai_confidence")
    @classmethod
    def _percent(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"must be between 0 and 100, got {v}")
        return v

    @field_validator("min_validation_layers")
    @classmethod
    def _layer_count(cls, v: int) -> int:
        if not 1 <= v <= len(_DOMAINS):
            raise ValueError(f"must be between 1 and {len(_DOMAINS)}, got {v}")
        return v

    @field_validator("critical_layers")
    @classmethod
    def _known_layers(cls, v: list[str]) -> list[str]:
        unknown = [name for name in v if name not in _DOMAINS]
        if unknown:
            raise ValueError(f"unknown layers {unknown}. Available: {', '.join(_DOMAINS)}")
        return v

    @field_validator("lookbacks")
    @classmethod
    def _known_analyzers(cls, v: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
        unknown = [name for name in v if name not in _DOMAINS]
        if unknown:
            raise ValueError(f"unknown analyzers {unknown}. Available: {', '.join(_DOMAINS)}")
        return v

    @field_validator("analysis_timeout")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("analysis_timeout must be positive")
        return v

    @model_validator(mode="after")
    def _validate_weights(self):
        unknown = set(self.confluence_weights) - set(CONFLUENCE_WEIGHTS)
        if unknown:
            raise ValueError(f"unknown confluence components: {sorted(unknown)}")
        missing = set(CONFLUENCE_WEIGHTS) - set(self.confluence_weights)
        if missing:
            raise ValueError(f"missing confluence components: {sorted(missing)}")
        total = sum(self.confluence_weights.values())
        if abs(total - 1) > 0.001:
            raise ValueError(f"confluence_weights must sum to 1.0, got {total:.4f}")
        return self

    @classmethod
    def from_dict(cls, raw: dict[str, Any], source: str = "engine config") -> "EngineConfig":
        """Validate a raw mapping.

        Raises:
            ConfigurationError: If any value is invalid.
        """
        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {source}: {e}", setting=source) from e


_DEFAULT_PATH = Path(__file__).parent.parent / "engine.yaml"


def load_engine_config(path: Path | None = None) -> EngineConfig:
    """Load engine config from YAML file.

    Falls back to defaults if the file doesn't exist.
    """
    config_path = Path(path) if path else _DEFAULT_PATH

    # API keys for the data sources may live next to the config
    load_dotenv(config_path.parent / ".env", override=False)

    if not config_path.exists():
        logger.info("No engine.yaml found at %s, using defaults", config_path)
        return EngineConfig()

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse {config_path}: {e}", setting=str(config_path)) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping", setting=str(config_path))

    config = EngineConfig.from_dict(raw, source=str(config_path))
    logger.info(
        "Loaded engine config: min confluence=%d, min AI confidence=%d, min layers=%d, %d analyzer overrides",
        config.min_confluence_score,
        config.min_ai_confidence,
        config.min_validation_layers,
        len(config.lookbacks),
    )
    return config
