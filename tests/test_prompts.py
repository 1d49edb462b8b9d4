"""Tests for system prompt composition."""

from __future__ import annotations

from pathlib import Path

import pytest

from pocketdr.exceptions import PromptError
from pocketdr.prompts.composer import PromptComposer, UserProfile, available_personas

FULL_PROFILE = UserProfile(
    name="Ravi",
    age=42,
    gender="male",
    height_cm=172,
    weight_kg=70.5,
    blood_type="O+",
    allergies="penicillin",
    medical_conditions="asthma",
)


@pytest.fixture
def composer() -> PromptComposer:
    return PromptComposer(persona="pocketdr")


class TestTemplates:
    def test_shipped_personas(self):
        assert available_personas() == ["aiva", "pocketdr"]

    def test_unknown_persona_raises(self):
        with pytest.raises(PromptError, match="not found"):
            PromptComposer(persona="nope")

    def test_template_without_preamble_raises(self, tmp_path: Path):
        (tmp_path / "empty.yaml").write_text("guest_note: hi\n")
        with pytest.raises(PromptError, match="no preamble"):
            PromptComposer(persona="empty", templates_dir=tmp_path)

    def test_aiva_persona_carries_interaction_rules(self):
        prompt = PromptComposer(persona="aiva").compose()
        assert "Aiva" in prompt
        assert "SYMPTOM TRIAGE" in prompt
        assert "EDUCATION MODE" in prompt
        assert "NEVER** prescribe dosage" in prompt


class TestCompose:
    def test_no_profile_omits_profile_lines(self, composer):
        prompt = composer.compose(None)
        assert prompt.startswith("You are PocketDr")
        assert "profile" not in prompt.lower()
        assert "Name:" not in prompt

    def test_compose_is_deterministic(self, composer):
        assert composer.compose(FULL_PROFILE) == composer.compose(FULL_PROFILE)

    def test_full_profile_lines_in_stable_order(self, composer):
        prompt = composer.compose(FULL_PROFILE)
        labels = [
            "Name: Ravi",
            "Age: 42",
            "Gender: male",
            "Height: 172 cm",
            "Weight: 70.5 kg",
            "Blood Type: O+",
            "Known Allergies: penicillin",
            "Medical Conditions: asthma",
        ]
        positions = [prompt.index(label) for label in labels]
        assert positions == sorted(positions)

    def test_missing_fields_are_omitted_not_defaulted(self, composer):
        prompt = composer.compose(UserProfile(name="Ravi", allergies="  "))
        assert "Name: Ravi" in prompt
        assert "Age:" not in prompt
        assert "Allergies" not in prompt
        assert "None" not in prompt

    def test_empty_profile_matches_no_profile(self, composer):
        assert composer.compose(UserProfile()) == composer.compose(None)

    def test_braces_in_values_are_kept_literally(self, composer):
        prompt = composer.compose(UserProfile(name="{value}"))
        assert "Name: {value}" in prompt

    def test_guest_note(self, composer):
        assert "Guest" not in composer.compose()
        assert "not being saved" in composer.compose(guest=True)


class TestUserProfile:
    def test_from_mapping_ignores_unknown_keys(self):
        profile = UserProfile.from_mapping({"name": "Ravi", "id": "abc", "age": 30})
        assert profile == UserProfile(name="Ravi", age=30)

    def test_is_empty(self):
        assert UserProfile().is_empty()
        assert UserProfile(gender=" ").is_empty()
        assert not FULL_PROFILE.is_empty()
