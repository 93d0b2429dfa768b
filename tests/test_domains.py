"""Unit tests for the domain configuration registry."""

import pytest

from studiora.domains import (
    Domain, DomainOverrides,
    build_config, detect_domain, determine_type, estimate_hours, get_profile,
)
from studiora.exceptions import ConfigurationError


def test_every_domain_has_a_profile():
    """Test the registry covers the whole Domain enum."""
    for domain in Domain:
        profile = get_profile(domain)
        assert profile.name
        assert profile.keywords


def test_profiles_are_read_only():
    """Test shared profiles cannot be mutated."""
    profile = get_profile(Domain.NURSING)
    with pytest.raises(TypeError):
        profile.hour_estimates["quiz"] = 10


def test_detect_nursing_domain():
    """Test keyword scoring above the threshold selects a domain."""
    domain = detect_domain("NURS 301 Clinical Nursing", "patient care plan medication hospital")
    assert domain is Domain.NURSING


def test_detect_domain_requires_score_above_threshold():
    """Test a score of exactly five falls back to the default domain."""
    assert detect_domain(None, "clinical nursing patient medical hospital") is Domain.DEFAULT


def test_detect_domain_uses_word_boundaries():
    """Test keywords embedded in longer words do not count."""
    assert detect_domain("Intro", "codes gits labs shifts") is Domain.DEFAULT


def test_detect_domain_empty():
    """Test an uninformative course maps to the default domain."""
    assert detect_domain("Intro", "") is Domain.DEFAULT


def test_determine_type():
    """Test domain patterns are tried before the default vocabulary."""
    assert determine_type("HESI Fundamentals exam", Domain.NURSING) == "exam"
    assert determine_type("Clinical rotation at General", Domain.NURSING) == "clinical"
    assert determine_type("Watch the lecture video", Domain.NURSING) == "video"
    assert determine_type("Something to hand in", Domain.DEFAULT) == "assignment"


def test_estimate_hours_tables():
    """Test hours come from the domain table, then the default table."""
    assert estimate_hours("quiz", Domain.NURSING) == 1.5
    assert estimate_hours("quiz", Domain.DEFAULT) == 1
    assert estimate_hours("video", Domain.NURSING) == 0.5
    assert estimate_hours("unheard-of", Domain.DEFAULT) == 2.0


def test_estimate_hours_adjustments():
    """Test chapter ranges and major-work words raise the estimate."""
    assert estimate_hours("reading", Domain.DEFAULT, "Read Chapters 3-8") == 3.0
    assert estimate_hours("exam", Domain.DEFAULT, "Final exam") == 3.0


def test_estimate_hours_is_clamped():
    """Test estimates never exceed the maximum."""
    assert estimate_hours("sprint", Domain.ENGINEERING) == 8.0
    assert estimate_hours("reading", Domain.DEFAULT, "Read pages 1-400") == 8.0


def test_build_config_overrides_win():
    """Test caller overrides take priority over domain defaults."""
    overrides = DomainOverrides(
        additional_keywords=["Checkpoint"],
        hour_estimates={"quiz": 0.5},
        patterns={"quiz": r"\bcheckpoint\b"},
    )
    config = build_config("NURS 301", overrides=overrides, domain=Domain.NURSING)
    assert config.domain is Domain.NURSING
    assert config.determine_type("Checkpoint 2") == "quiz"
    assert config.estimate_hours("quiz") == 0.5
    assert "checkpoint" in config.keywords


def test_build_config_detects_domain():
    """Test build_config detects the domain when none is forced."""
    config = build_config("Software Engineering", "git repository code review sprint milestone api")
    assert config.domain is Domain.ENGINEERING
    assert config.domain_name == "Computer Science/Engineering"


def test_build_config_rejects_bad_pattern():
    """Test a malformed override pattern is a configuration error."""
    with pytest.raises(ConfigurationError):
        build_config("Any", overrides=DomainOverrides(patterns={"quiz": "("}))
