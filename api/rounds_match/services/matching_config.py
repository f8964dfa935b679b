from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..config import DEFAULT_MATCHING_CONFIG, MATCHING_CONFIG_JSON
from .errors import InvalidConfigurationError

logger = logging.getLogger(__name__)

WEIGHT_SUM_TOLERANCE = 0.01

WEIGHT_KEYS = {
    "SPECIALTY_W": "specialty",
    "INTERESTS_W": "interests",
    "SOCIAL_W": "social",
    "AVAILABILITY_W": "availability",
    "LOCALITY_W": "locality",
    "LIFESTYLE_W": "lifestyle",
}


@dataclass(frozen=True)
class DimensionWeights:
    specialty: float = 0.30
    interests: float = 0.25
    social: float = 0.15
    availability: float = 0.10
    locality: float = 0.15
    lifestyle: float = 0.05

    def as_dict(self) -> dict[str, float]:
        return {
            "specialty": self.specialty,
            "interests": self.interests,
            "social": self.social,
            "availability": self.availability,
            "locality": self.locality,
            "lifestyle": self.lifestyle,
        }


@dataclass(frozen=True)
class MatchingConfig:
    weights: DimensionWeights = field(default_factory=DimensionWeights)
    min_group_size: int = 3
    max_group_size: int = 4
    acceptance_threshold: float = 0.35
    cooldown_weeks: int = 8
    age_max_gap: float = 15.0
    run_timeout_seconds: float = 180.0
    max_workers: int = 4
    respect_gender_preferences: bool = True

    def as_dict(self) -> dict[str, Any]:
        return {
            "weights": self.weights.as_dict(),
            "min_group_size": self.min_group_size,
            "max_group_size": self.max_group_size,
            "acceptance_threshold": self.acceptance_threshold,
            "cooldown_weeks": self.cooldown_weeks,
            "age_max_gap": self.age_max_gap,
            "run_timeout_seconds": self.run_timeout_seconds,
            "max_workers": self.max_workers,
            "respect_gender_preferences": self.respect_gender_preferences,
        }


def validate_matching_config(config: MatchingConfig) -> list[str]:
    issues: list[str] = []

    weights = config.weights.as_dict()
    for name, value in weights.items():
        if value < 0:
            issues.append(f"Weight for {name} must be non-negative, got {value}")
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        issues.append(f"Dimension weights must sum to 1.0, got {round(total, 6)}")

    if config.min_group_size < 2:
        issues.append(f"min_group_size must be at least 2, got {config.min_group_size}")
    if config.min_group_size > config.max_group_size:
        issues.append(f"min_group_size ({config.min_group_size}) exceeds max_group_size ({config.max_group_size})")
    if not 0.0 <= config.acceptance_threshold <= 1.0:
        issues.append(f"acceptance_threshold must be in [0, 1], got {config.acceptance_threshold}")
    if config.cooldown_weeks < 1:
        issues.append(f"cooldown_weeks must be positive, got {config.cooldown_weeks}")
    if config.age_max_gap <= 0:
        issues.append(f"age_max_gap must be positive, got {config.age_max_gap}")
    if config.run_timeout_seconds <= 0:
        issues.append(f"run_timeout_seconds must be positive, got {config.run_timeout_seconds}")
    if config.max_workers < 1:
        issues.append(f"max_workers must be positive, got {config.max_workers}")
    return issues


def _parse_overrides_json(raw: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidConfigurationError(f"MATCHING_CONFIG_JSON is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise InvalidConfigurationError("MATCHING_CONFIG_JSON must be a JSON object")
    return parsed


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise InvalidConfigurationError(f"{name} must be true or false, got {value!r}")


def config_from_mapping(values: dict[str, Any]) -> MatchingConfig:
    unknown = sorted(set(values) - set(DEFAULT_MATCHING_CONFIG))
    if unknown:
        raise InvalidConfigurationError(f"Unknown matching config keys: {', '.join(unknown)}")
    merged = {**DEFAULT_MATCHING_CONFIG, **values}
    try:
        weights = DimensionWeights(**{dim: float(merged[key]) for key, dim in WEIGHT_KEYS.items()})
        return MatchingConfig(
            weights=weights,
            min_group_size=int(merged["MIN_GROUP_SIZE"]),
            max_group_size=int(merged["MAX_GROUP_SIZE"]),
            acceptance_threshold=float(merged["ACCEPTANCE_THRESHOLD"]),
            cooldown_weeks=int(merged["COOLDOWN_WEEKS"]),
            age_max_gap=float(merged["AGE_MAX_GAP"]),
            run_timeout_seconds=float(merged["MATCH_RUN_TIMEOUT_SECONDS"]),
            max_workers=int(merged["MATCH_MAX_WORKERS"]),
            respect_gender_preferences=_parse_bool("RESPECT_GENDER_PREFERENCES", merged["RESPECT_GENDER_PREFERENCES"]),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidConfigurationError(f"Matching config value has the wrong type: {exc}") from exc


def load_matching_config(overrides: dict[str, Any] | None = None, overrides_json: str | None = None) -> MatchingConfig:
    """Build and validate the matching configuration.

    Values come from ``DEFAULT_MATCHING_CONFIG`` (environment), then the JSON
    overrides (``MATCHING_CONFIG_JSON`` unless given explicitly), then
    ``overrides``. Raises ``InvalidConfigurationError`` listing every problem.
    """
    raw_json = MATCHING_CONFIG_JSON if overrides_json is None else overrides_json
    values = {**_parse_overrides_json(raw_json), **(overrides or {})}
    config = config_from_mapping(values)
    issues = validate_matching_config(config)
    if issues:
        raise InvalidConfigurationError("; ".join(issues))
    logger.info("[matching] config loaded %s", config.as_dict())
    return config
