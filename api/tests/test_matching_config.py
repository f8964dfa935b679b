import pytest

from rounds_match.services.errors import InvalidConfigurationError
from rounds_match.services.matching_config import (
    MatchingConfig,
    config_from_mapping,
    load_matching_config,
    validate_matching_config,
)


def test_defaults_are_valid():
    config = load_matching_config(overrides_json="")
    assert config == MatchingConfig()
    assert validate_matching_config(config) == []


def test_json_overrides_then_explicit_overrides():
    config = load_matching_config(
        overrides={"MAX_GROUP_SIZE": 5},
        overrides_json='{"MIN_GROUP_SIZE": 4, "MAX_GROUP_SIZE": 6, "COOLDOWN_WEEKS": 4}',
    )
    assert config.min_group_size == 4
    assert config.max_group_size == 5
    assert config.cooldown_weeks == 4


@pytest.mark.parametrize(
    "overrides",
    [
        {"SPECIALTY_W": -0.1, "INTERESTS_W": 0.65},
        {"SPECIALTY_W": 0.9},
        {"MIN_GROUP_SIZE": 1},
        {"MIN_GROUP_SIZE": 5, "MAX_GROUP_SIZE": 4},
        {"ACCEPTANCE_THRESHOLD": 1.5},
        {"COOLDOWN_WEEKS": 0},
        {"MATCH_RUN_TIMEOUT_SECONDS": 0},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(InvalidConfigurationError):
        load_matching_config(overrides=overrides, overrides_json="")


def test_weight_sum_tolerance():
    config = load_matching_config(overrides={"LIFESTYLE_W": 0.055}, overrides_json="")
    assert config.weights.lifestyle == 0.055


def test_unknown_keys_and_bad_json_are_rejected():
    with pytest.raises(InvalidConfigurationError, match="Unknown"):
        config_from_mapping({"MIN_GRUOP_SIZE": 3})
    with pytest.raises(InvalidConfigurationError):
        load_matching_config(overrides_json="{not json")
    with pytest.raises(InvalidConfigurationError):
        load_matching_config(overrides_json="[1, 2]")
    with pytest.raises(InvalidConfigurationError):
        load_matching_config(overrides={"MIN_GROUP_SIZE": "three"}, overrides_json="")


def test_gender_preference_flag_parses_json_strings():
    config = load_matching_config(overrides_json='{"RESPECT_GENDER_PREFERENCES": "false"}')
    assert config.respect_gender_preferences is False
    config = load_matching_config(overrides_json='{"RESPECT_GENDER_PREFERENCES": " True "}')
    assert config.respect_gender_preferences is True
    config = load_matching_config(overrides={"RESPECT_GENDER_PREFERENCES": False}, overrides_json="")
    assert config.respect_gender_preferences is False


@pytest.mark.parametrize("value", ["maybe", 1, None])
def test_gender_preference_flag_rejects_non_booleans(value):
    with pytest.raises(InvalidConfigurationError, match="RESPECT_GENDER_PREFERENCES"):
        load_matching_config(overrides={"RESPECT_GENDER_PREFERENCES": value}, overrides_json="")


def test_validation_reports_every_problem():
    issues = validate_matching_config(MatchingConfig(min_group_size=1, acceptance_threshold=-0.2))
    assert len(issues) == 2
