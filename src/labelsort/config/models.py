"""Configuration models describing labelsort settings."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class LabelsortBaseModel(BaseModel):
    """Shared configuration for labelsort Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class MatchingSettings(LabelsortBaseModel):
    """Settings that govern group inference for items without a code.

    Attributes:
        window_seconds: Symmetric capture-time window around the target item.
            Candidates exactly at the edge are excluded.
        min_shared_words: Shared meaningful words required by the strict strategy.
        min_score: Score a weighted candidate must exceed to be accepted.
        inferred_confidence: Confidence reported for strict matches.
        inherit_from_invalid_groups: Whether ``invalid-group`` items may be
            used as sources of inherited groups.
        match_on_extraction: Run the weighted matcher immediately when an
            extraction result carries no code.
        proactive_strategy: Strategy used for proactive matching.
        inference_strategy: Strategy used for batch inference sweeps.
    """

    window_seconds: float = Field(default=180.0, gt=0)
    min_shared_words: int = Field(default=2, ge=1)
    min_score: float = Field(default=0.35, ge=0, le=1)
    inferred_confidence: float = Field(default=0.7, ge=0, lt=1)
    inherit_from_invalid_groups: bool = True
    match_on_extraction: bool = True
    proactive_strategy: Literal["strict", "weighted"] = "weighted"
    inference_strategy: Literal["strict", "weighted"] = "strict"


class NamingSettings(LabelsortBaseModel):
    """Settings for file name allocation.

    Attributes:
        placeholder: Base token used when a group sanitizes to an empty string.
        max_counter: Highest collision counter tried before allocation fails.
    """

    placeholder: str = "untitled"
    max_counter: int = Field(default=1_000, ge=2)


class CodeSettings(LabelsortBaseModel):
    """Code format validation settings.

    Attributes:
        enabled_patterns: Pattern identifiers accepted as valid codes. ``None``
            enables every built-in pattern.
    """

    enabled_patterns: Optional[List[str]] = None


class LoggingSettings(LabelsortBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
    """

    level: str = "WARNING"


class CLIOptions(LabelsortBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
    """

    quiet_default: bool = False
    summary_default: bool = False


class LabelsortConfig(LabelsortBaseModel):
    """Top-level configuration struct for labelsort.

    Attributes:
        matching: Group inference settings.
        naming: Name allocation settings.
        codes: Code validation settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    naming: NamingSettings = Field(default_factory=NamingSettings)
    codes: CodeSettings = Field(default_factory=CodeSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "LabelsortBaseModel",
    "MatchingSettings",
    "NamingSettings",
    "CodeSettings",
    "LoggingSettings",
    "CLIOptions",
    "LabelsortConfig",
]
