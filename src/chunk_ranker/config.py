"""Centralized configuration for the chunk ranker."""

import math
import os
from dataclasses import dataclass, field, fields
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from loguru import logger

from .errors import ConfigurationError


class GroupingMode(str, Enum):
    """Quality filter grouping policy."""

    SIMILAR = "similar"  # first score group only
    RELATED = "related"  # up to two score groups


def _parse_grouping_mode(value: Optional[str]) -> Optional[GroupingMode]:
    """Parse RAG_GROUPING; invalid values are ignored with a warning."""
    if not value:
        return None
    normalized = value.strip().lower()
    try:
        return GroupingMode(normalized)
    except ValueError:
        logger.warning(
            f"Invalid RAG_GROUPING value: '{value}'. Expected 'similar' or 'related'. Ignoring."
        )
        return None


def _parse_max_distance(value: Optional[str]) -> Optional[float]:
    """Parse RAG_MAX_DISTANCE; must be a positive number."""
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        parsed = float("nan")
    if parsed != parsed or parsed <= 0:
        logger.warning(
            f"Invalid RAG_MAX_DISTANCE value: '{value}'. Expected positive number. Ignoring."
        )
        return None
    return parsed


def _parse_hybrid_weight(value: Optional[str]) -> Optional[float]:
    """Parse RAG_HYBRID_WEIGHT; must be within [0, 1]."""
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        parsed = float("nan")
    if parsed != parsed or parsed < 0 or parsed > 1:
        logger.warning(
            f"Invalid RAG_HYBRID_WEIGHT value: '{value}'. Expected 0.0-1.0. Using default."
        )
        return None
    return parsed


def _parse_positive_float(name: str, value: Optional[str], default: float) -> float:
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        parsed = float("nan")
    if parsed != parsed or parsed <= 0:
        logger.warning(f"Invalid {name} value: '{value}'. Using default {default}.")
        return default
    return parsed


def _parse_positive_int(name: str, value: Optional[str], default: int) -> int:
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        parsed = 0
    if parsed <= 0:
        logger.warning(f"Invalid {name} value: '{value}'. Using default {default}.")
        return default
    return parsed


def _require_number(name: str, value: Any) -> None:
    """Reject non-numeric and NaN values with a named-field error."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise ConfigurationError(name, value, "must be a number")


class Config:
    """
    Chunk ranker configuration with environment variable overrides.

    Environment values are parsed leniently: anything malformed is logged
    and replaced by the default. Explicitly constructed RankingConfig and
    FlywheelConfig objects are strict and raise ConfigurationError instead.
    """

    # ========================================================================
    # Storage
    # ========================================================================
    DB_PATH: str = os.getenv("RAG_DB_PATH", "./ragdb")
    CONFIG_PATH: Optional[str] = os.getenv("RAG_CONFIG_PATH")
    FEEDBACK_FILENAME: str = "feedback.json"

    # ========================================================================
    # Hybrid scoring and quality filter
    # ========================================================================
    DEFAULT_HYBRID_WEIGHT: float = 0.6
    HYBRID_WEIGHT: Optional[float] = _parse_hybrid_weight(os.getenv("RAG_HYBRID_WEIGHT"))
    MAX_DISTANCE: Optional[float] = _parse_max_distance(os.getenv("RAG_MAX_DISTANCE"))
    GROUPING: Optional[GroupingMode] = _parse_grouping_mode(os.getenv("RAG_GROUPING"))
    GROUPING_STD_MULTIPLIER: float = _parse_positive_float(
        "RAG_GROUPING_STD_MULTIPLIER", os.getenv("RAG_GROUPING_STD_MULTIPLIER"), 1.5
    )
    HYBRID_CANDIDATE_MULTIPLIER: int = _parse_positive_int(
        "RAG_HYBRID_CANDIDATE_MULTIPLIER", os.getenv("RAG_HYBRID_CANDIDATE_MULTIPLIER"), 2
    )

    # ========================================================================
    # Query limits
    # ========================================================================
    MIN_RESULT_LIMIT: int = 1
    MAX_RESULT_LIMIT: int = 20
    DEFAULT_RESULT_LIMIT: int = 10

    # ========================================================================
    # Flywheel defaults
    # ========================================================================
    PIN_BOOST: float = 1.3
    CO_PIN_BOOST: float = 1.15
    DISMISS_PENALTY: float = 0.5
    MAX_EVENT_AGE_DAYS: int = 30

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Returns:
            True if validation passes

        Raises:
            ConfigurationError: On the first invalid value
        """
        RankingConfig(
            hybrid_weight=cls.effective_hybrid_weight(),
            max_distance=cls.MAX_DISTANCE,
            grouping=cls.GROUPING,
            grouping_std_multiplier=cls.GROUPING_STD_MULTIPLIER,
            candidate_multiplier=cls.HYBRID_CANDIDATE_MULTIPLIER,
        )
        FlywheelConfig(
            pin_boost=cls.PIN_BOOST,
            co_pin_boost=cls.CO_PIN_BOOST,
            dismiss_penalty=cls.DISMISS_PENALTY,
            max_event_age=timedelta(days=cls.MAX_EVENT_AGE_DAYS),
        )
        if not (1 <= cls.MIN_RESULT_LIMIT <= cls.MAX_RESULT_LIMIT):
            raise ConfigurationError(
                "MAX_RESULT_LIMIT", cls.MAX_RESULT_LIMIT, "must be >= MIN_RESULT_LIMIT >= 1"
            )
        return True

    @classmethod
    def effective_hybrid_weight(cls) -> float:
        if cls.HYBRID_WEIGHT is None:
            return cls.DEFAULT_HYBRID_WEIGHT
        return cls.HYBRID_WEIGHT


@dataclass(frozen=True)
class RankingConfig:
    """
    Hybrid score combiner and quality filter policy.

    Attributes:
        hybrid_weight: 0 = vector only, 1 = lexical only
        max_distance: Drop candidates whose blended score exceeds this (None = keep all)
        grouping: Optional grouping mode
        grouping_std_multiplier: k in the mean + k*std group boundary threshold
        candidate_multiplier: Over-fetch factor when requesting candidates
    """

    hybrid_weight: float = Config.DEFAULT_HYBRID_WEIGHT
    max_distance: Optional[float] = None
    grouping: Optional[GroupingMode] = None
    grouping_std_multiplier: float = 1.5
    candidate_multiplier: int = 2

    def __post_init__(self):
        _require_number("hybrid_weight", self.hybrid_weight)
        if not (0.0 <= self.hybrid_weight <= 1.0):
            raise ConfigurationError("hybrid_weight", self.hybrid_weight, "must be within [0, 1]")
        if self.max_distance is not None:
            _require_number("max_distance", self.max_distance)
            if self.max_distance <= 0:
                raise ConfigurationError("max_distance", self.max_distance, "must be > 0")
        if self.grouping is not None and not isinstance(self.grouping, GroupingMode):
            try:
                object.__setattr__(self, "grouping", GroupingMode(self.grouping.lower()))
            except (AttributeError, ValueError):
                raise ConfigurationError(
                    "grouping", self.grouping, "must be 'similar' or 'related'"
                )
        _require_number("grouping_std_multiplier", self.grouping_std_multiplier)
        if self.grouping_std_multiplier <= 0:
            raise ConfigurationError(
                "grouping_std_multiplier", self.grouping_std_multiplier, "must be > 0"
            )
        if isinstance(self.candidate_multiplier, bool) or not isinstance(
            self.candidate_multiplier, int
        ):
            raise ConfigurationError(
                "candidate_multiplier", self.candidate_multiplier, "must be an integer"
            )
        if self.candidate_multiplier < 1:
            raise ConfigurationError(
                "candidate_multiplier", self.candidate_multiplier, "must be >= 1"
            )


@dataclass(frozen=True)
class FlywheelConfig:
    """
    Feedback re-ranking multipliers.

    Boosts divide a result's score, so pin_boost and co_pin_boost must be
    >= 1 and dismiss_penalty must be in (0, 1].
    """

    pin_boost: float = Config.PIN_BOOST
    co_pin_boost: float = Config.CO_PIN_BOOST
    dismiss_penalty: float = Config.DISMISS_PENALTY
    max_event_age: timedelta = timedelta(days=Config.MAX_EVENT_AGE_DAYS)

    def __post_init__(self):
        for name in ("pin_boost", "co_pin_boost", "dismiss_penalty"):
            _require_number(name, getattr(self, name))
        if not isinstance(self.max_event_age, timedelta):
            raise ConfigurationError("max_event_age", self.max_event_age, "must be a timedelta")
        if self.pin_boost < 1:
            raise ConfigurationError("pin_boost", self.pin_boost, "must be >= 1")
        if self.co_pin_boost < 1:
            raise ConfigurationError("co_pin_boost", self.co_pin_boost, "must be >= 1")
        if not (0 < self.dismiss_penalty <= 1):
            raise ConfigurationError(
                "dismiss_penalty", self.dismiss_penalty, "must be within (0, 1]"
            )
        if self.max_event_age <= timedelta(0):
            raise ConfigurationError("max_event_age", self.max_event_age, "must be positive")


@dataclass(frozen=True)
class Settings:
    """Everything the composition root needs to build a pipeline."""

    db_path: str = Config.DB_PATH
    ranking: RankingConfig = field(default_factory=RankingConfig)
    flywheel: FlywheelConfig = field(default_factory=FlywheelConfig)

    @property
    def feedback_path(self) -> Path:
        return Path(self.db_path) / Config.FEEDBACK_FILENAME


def _read_yaml(path: str) -> dict[str, Any]:
    """Load a YAML settings file. A missing or empty file yields {}."""
    config_path = Path(path)
    if not config_path.exists():
        logger.debug(f"Settings file not found at {path}, using defaults")
        return {}

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError("config_path", path, f"invalid YAML: {e}")

    if not data:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("config_path", path, "top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(name, section, "must be a mapping")
    return dict(section)


def _reject_unknown_keys(section: str, data: dict[str, Any], config_cls: type) -> None:
    known = {f.name for f in fields(config_cls)}
    for key in data:
        if key not in known:
            raise ConfigurationError(f"{section}.{key}", data[key], "unknown setting")


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Build Settings from defaults, an optional YAML file, and the environment.

    Precedence (lowest to highest): built-in defaults, YAML file, environment.

    Args:
        path: YAML settings file. Defaults to RAG_CONFIG_PATH when unset.

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If a YAML value is out of range
    """
    path = path or Config.CONFIG_PATH
    data = _read_yaml(path) if path else {}

    ranking_data = _section(data, "ranking")
    flywheel_data = _section(data, "flywheel")

    ranking_data.setdefault("hybrid_weight", Config.DEFAULT_HYBRID_WEIGHT)
    ranking_data.setdefault("grouping_std_multiplier", Config.GROUPING_STD_MULTIPLIER)
    ranking_data.setdefault("candidate_multiplier", Config.HYBRID_CANDIDATE_MULTIPLIER)

    # Environment overrides the file
    if Config.HYBRID_WEIGHT is not None:
        ranking_data["hybrid_weight"] = Config.HYBRID_WEIGHT
    if Config.MAX_DISTANCE is not None:
        ranking_data["max_distance"] = Config.MAX_DISTANCE
    if Config.GROUPING is not None:
        ranking_data["grouping"] = Config.GROUPING

    if "max_event_age_days" in flywheel_data:
        days = flywheel_data.pop("max_event_age_days")
        _require_number("max_event_age_days", days)
        try:
            flywheel_data["max_event_age"] = timedelta(days=days)
        except OverflowError:
            raise ConfigurationError("max_event_age_days", days, "out of range")

    _reject_unknown_keys("ranking", ranking_data, RankingConfig)
    _reject_unknown_keys("flywheel", flywheel_data, FlywheelConfig)

    ranking = RankingConfig(**ranking_data)
    flywheel = FlywheelConfig(**flywheel_data)

    db_path = os.getenv("RAG_DB_PATH") or data.get("db_path") or Config.DB_PATH

    settings = Settings(db_path=db_path, ranking=ranking, flywheel=flywheel)
    logger.info(
        f"Settings loaded: db_path={settings.db_path}, "
        f"hybrid_weight={ranking.hybrid_weight}, max_distance={ranking.max_distance}, "
        f"grouping={ranking.grouping.value if ranking.grouping else None}"
    )
    return settings
