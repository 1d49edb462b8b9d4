"""System prompt composition.

Builds the instruction context sent ahead of the conversation: a persona
preamble loaded from a YAML template, then one line per known profile
field. Interaction rules (triage flow, education cards, safety protocols)
are plain template text enforced by the model, not by code here.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from pocketdr.exceptions import PromptError


@dataclass(frozen=True)
class UserProfile:
    """Optional patient details read from the profile store."""

    name: str | None = None
    age: int | None = None
    gender: str | None = None
    height_cm: float | None = None
    weight_kg: float | None = None
    blood_type: str | None = None
    allergies: str | None = None
    medical_conditions: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> UserProfile:
        """Build a profile from a row-shaped mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def is_empty(self) -> bool:
        return all(_is_blank(getattr(self, f.name)) for f in fields(self))


# Rendering order for profile lines.
PROFILE_FIELD_ORDER = (
    "name",
    "age",
    "gender",
    "height_cm",
    "weight_kg",
    "blood_type",
    "allergies",
    "medical_conditions",
)


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


class PromptComposer:
    """Composes the system instruction for one persona template."""

    SECTION_SEPARATOR = "\n\n"

    def __init__(self, persona: str = "aiva", templates_dir: Path | None = None):
        if templates_dir is None:
            templates_dir = Path(__file__).parent / "templates"
        self._templates_dir = templates_dir
        self._persona = persona
        self._template = self._load_template(persona)

    @property
    def persona(self) -> str:
        return self._persona

    def _load_template(self, name: str) -> dict:
        path = self._templates_dir / f"{name}.yaml"
        if not path.exists():
            raise PromptError(f"Persona template not found: {name}")
        try:
            with open(path) as f:
                template = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise PromptError(f"Invalid persona template {path}: {e}") from e
        if not isinstance(template, dict) or not str(template.get("preamble", "")).strip():
            raise PromptError(f"Persona template {name} has no preamble")
        return template

    def _profile_lines(self, profile: UserProfile) -> list[str]:
        formats: dict = self._template.get("profile_fields", {}) or {}
        lines = []
        for field_name in PROFILE_FIELD_ORDER:
            value = getattr(profile, field_name)
            if _is_blank(value):
                continue
            fmt = formats.get(field_name)
            if not fmt:
                continue
            # Manual replacement keeps braces in user values harmless.
            rendered = str(fmt).replace("{value}", str(value).strip())
            lines.append(f"- {rendered}")
        return lines

    def compose(self, profile: UserProfile | None = None, *, guest: bool = False) -> str:
        """Return the system instruction. Pure: same input, same output."""
        sections = [str(self._template["preamble"]).strip()]

        if profile is not None:
            lines = self._profile_lines(profile)
            if lines:
                intro = str(self._template.get("profile_intro", "")).strip()
                outro = str(self._template.get("profile_outro", "")).strip()
                block = "\n".join([intro, *lines] if intro else lines)
                sections.append(block)
                if outro:
                    sections.append(outro)

        if guest:
            note = str(self._template.get("guest_note", "")).strip()
            if note:
                sections.append(note)

        return self.SECTION_SEPARATOR.join(sections)


def available_personas(templates_dir: Path | None = None) -> list[str]:
    """List persona template names shipped in ``templates_dir``."""
    directory = templates_dir or Path(__file__).parent / "templates"
    return sorted(p.stem for p in directory.glob("*.yaml"))
