"""Configuration models, guardrail presets and the YAML settings loader.

Guardrails are resolved per tenant by merging a named preset with the
tenant's overrides. Field names are snake_case; camelCase aliases are
accepted so overrides written for the web tier load unchanged.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel, to_snake

from decision_engine.core.modes import ModeState, SystemModeName, mode_state_for

logger = logging.getLogger(__name__)

ScoringStrategy = Literal["simple", "weighted"]
ShortlistStrategy = Literal["quality", "fast", "strict", "diversity"]
ExplainLevel = Literal["compact", "standard", "detailed"]

DEFAULT_PRESET = "balanced"


class _GuardrailModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ScoringWeights(_GuardrailModel):
    """Raw signal weights; normalized to sum to 1 by the match engine."""

    must_have_skills: float = Field(default=0.4, ge=0.0)
    nice_to_have_skills: float = Field(default=0.2, ge=0.0)
    experience: float = Field(default=0.25, ge=0.0)
    location: float = Field(default=0.15, ge=0.0)


class ScoringThresholds(_GuardrailModel):
    """Score cutoffs. Values <= 1 are fractions of 100."""

    min_match_score: float = Field(default=0.0, ge=0.0)
    shortlist_min_score: float | None = Field(default=None, ge=0.0)
    shortlist_max_candidates: int | None = None


class ScoringConfig(_GuardrailModel):
    strategy: ScoringStrategy = "weighted"
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    thresholds: ScoringThresholds = Field(default_factory=ScoringThresholds)


class ConfidenceBands(_GuardrailModel):
    high: float = Field(default=0.75, ge=0.0, le=1.0)
    medium: float = Field(default=0.55, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def medium_not_above_high(self) -> "ConfidenceBands":
        if self.medium > self.high:
            msg = f"confidence band medium ({self.medium}) must not exceed high ({self.high})"
            raise ValueError(msg)
        return self


class SafetyConfig(_GuardrailModel):
    require_must_haves: bool = False
    exclude_internal_candidates: bool = False
    confidence_bands: ConfidenceBands | None = None


class ShortlistConfig(_GuardrailModel):
    strategy: ShortlistStrategy = "quality"
    max_candidates: int | None = None


class ExplainConfig(_GuardrailModel):
    level: ExplainLevel = "detailed"
    include_weights: bool = False


class GuardrailsConfig(_GuardrailModel):
    """Tenant-resolved guardrails consumed by every engine."""

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    shortlist: ShortlistConfig | None = None
    explain: ExplainConfig = Field(default_factory=ExplainConfig)


_PRESET_DATA: dict[str, dict[str, Any]] = {
    "conservative": {
        "scoring": {
            "strategy": "weighted",
            "weights": {
                "must_have_skills": 55,
                "nice_to_have_skills": 15,
                "experience": 20,
                "location": 10,
            },
            "thresholds": {
                "min_match_score": 70,
                "shortlist_min_score": 80,
                "shortlist_max_candidates": 8,
            },
        },
        "safety": {
            "require_must_haves": True,
            "exclude_internal_candidates": True,
            "confidence_bands": {"high": 0.75, "medium": 0.55},
        },
        "shortlist": {"strategy": "strict"},
        "explain": {"level": "compact", "include_weights": True},
    },
    "balanced": {
        "scoring": {
            "strategy": "weighted",
            "weights": {
                "must_have_skills": 40,
                "nice_to_have_skills": 20,
                "experience": 25,
                "location": 15,
            },
            "thresholds": {
                "min_match_score": 60,
                "shortlist_min_score": 75,
                "shortlist_max_candidates": 10,
            },
        },
        "safety": {
            "require_must_haves": True,
            "exclude_internal_candidates": False,
            "confidence_bands": {"high": 0.75, "medium": 0.55},
        },
        "shortlist": {"strategy": "quality"},
        "explain": {"level": "compact", "include_weights": True},
    },
    "aggressive": {
        "scoring": {
            "strategy": "weighted",
            "weights": {
                "must_have_skills": 35,
                "nice_to_have_skills": 25,
                "experience": 25,
                "location": 15,
            },
            "thresholds": {
                "min_match_score": 50,
                "shortlist_min_score": 65,
                "shortlist_max_candidates": 15,
            },
        },
        "safety": {
            "require_must_haves": False,
            "exclude_internal_candidates": False,
            "confidence_bands": {"high": 0.75, "medium": 0.55},
        },
        "shortlist": {"strategy": "diversity"},
        "explain": {"level": "detailed", "include_weights": True},
    },
}

GUARDRAILS_PRESETS: dict[str, GuardrailsConfig] = {
    name: GuardrailsConfig.model_validate(data) for name, data in _PRESET_DATA.items()
}


def _snake_keys(value: Any) -> Any:
    """Recursively convert mapping keys to snake_case so overrides line up with presets."""
    if isinstance(value, Mapping):
        return {to_snake(str(k)): _snake_keys(v) for k, v in value.items()}
    return value


def merge_config(base: Mapping[str, Any], override: Any) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.

    Only plain mappings merge; lists and scalar leaves in the override
    replace the base value outright. A non-mapping override is ignored.
    """
    result: dict[str, Any] = {
        k: merge_config(v, None) if isinstance(v, Mapping) else v for k, v in base.items()
    }
    if not isinstance(override, Mapping):
        return result

    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = merge_config(current, value)
        else:
            result[key] = value
    return result


def resolve_guardrails(
    preset: str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> GuardrailsConfig:
    """Merge a named preset with tenant overrides into a validated GuardrailsConfig.

    Unknown preset names fall back to the balanced preset.
    """
    name = (preset or DEFAULT_PRESET).strip().lower()
    if name not in _PRESET_DATA:
        logger.warning("Unknown guardrails preset '%s' - falling back to '%s'", preset, DEFAULT_PRESET)
        name = DEFAULT_PRESET

    merged = merge_config(_PRESET_DATA[name], _snake_keys(overrides or {}))
    return GuardrailsConfig.model_validate(merged)


GuardrailsLoader = Callable[[str], Awaitable[GuardrailsConfig]]


async def default_guardrails_loader(tenant_id: str) -> GuardrailsConfig:
    """Guardrails loader used when no collaborator is injected."""
    return GUARDRAILS_PRESETS[DEFAULT_PRESET]


# ---------------------------------------------------------------------------
# Application settings (YAML)
# ---------------------------------------------------------------------------


class TenantSettings(BaseModel):
    """Per-tenant preset, mode and guardrail overrides."""

    preset: str = DEFAULT_PRESET
    mode: SystemModeName = "production"
    agents_enabled: list[str] | None = None
    overrides: dict[str, Any] = Field(default_factory=dict)

    def guardrails(self) -> GuardrailsConfig:
        return resolve_guardrails(self.preset, self.overrides)

    def mode_state(self) -> ModeState:
        return mode_state_for(
            self.mode,
            guardrails_preset=self.preset,
            agents_enabled=self.agents_enabled,
        )


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/decision_engine.db"


class PolishConfig(BaseModel):
    """LLM polish settings for recruiter-facing explanations."""

    enabled: bool = False
    provider: str = "anthropic"
    model: str | None = None
    max_tokens: int = Field(default=600, ge=1)
    timeout_seconds: float = Field(default=10.0, gt=0.0)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    polish: PolishConfig = Field(default_factory=PolishConfig)
    tenants: dict[str, TenantSettings] = Field(default_factory=dict)

    @field_validator("tenants")
    @classmethod
    def tenant_ids_not_blank(cls, v: dict[str, TenantSettings]) -> dict[str, TenantSettings]:
        if any(not key.strip() for key in v):
            msg = "tenant ids must not be empty"
            raise ValueError(msg)
        return v

    def tenant(self, tenant_id: str) -> TenantSettings:
        """Return the tenant's settings, or defaults for an unknown tenant."""
        return self.tenants.get(tenant_id) or TenantSettings()

    def guardrails_loader(self) -> GuardrailsLoader:
        async def load(tenant_id: str) -> GuardrailsConfig:
            return self.tenant(tenant_id).guardrails()

        return load

    def mode_loader(self) -> Callable[[str], Awaitable[ModeState]]:
        async def load(tenant_id: str) -> ModeState:
            return self.tenant(tenant_id).mode_state()

        return load

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
