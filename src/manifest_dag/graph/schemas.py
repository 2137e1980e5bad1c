"""Document schemas for manifest and script YAML.

Each model mirrors one section of a document. Optional fields carry defaults so
that manifests only declare what is non-default; identity fields (`id`,
`produces`, `name`, `persona`) are required.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from manifest_dag.graph.types import BRANCH_MARKER, DATA_DIR, META_DIR

HANDLER_PATTERN = r"^[a-z][a-z0-9_-]*$"
# One path segment: no separators, no leading dot.
STAGE_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
StageId = Annotated[str, StringConstraints(pattern=STAGE_ID_PATTERN)]
HandlerName = Annotated[str, StringConstraints(pattern=HANDLER_PATTERN)]


def _stringify(value: Any) -> Any:
    # YAML reads `version: 1.0` as a float and `authors: 2024` as an int.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class SkipWarningDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    short: str = ""
    reason: str = ""
    max_warnings: int = Field(default=2, ge=0)


class StageDocument(BaseModel):
    """Raw form of one manifest stage."""

    model_config = ConfigDict(extra="ignore")

    id: StageId
    produces: list[NonEmptyStr] = Field(min_length=1)
    name: str | None = None
    phase: str | None = None
    previous: Any = None
    optional: bool = False
    structural: bool = False
    parameters: dict[str, Any] | None = None
    instruction: str = ""
    commands: list[str] = Field(default_factory=list)
    handler: HandlerName | None = None
    skip_warning: SkipWarningDocument | None = None
    narrative: str | None = None
    blueprint: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _reject_layout_names(cls, value: str) -> str:
        """Stage ids become directory names in the session tree."""

        if value in (DATA_DIR, META_DIR):
            raise ValueError(f"stage id '{value}' is reserved for stage directories")
        if BRANCH_MARKER in value:
            raise ValueError(f"stage id must not contain '{BRANCH_MARKER}'")
        return value

    @field_validator("previous", mode="before")
    @classmethod
    def _normalize_previous(cls, value: Any) -> list[str] | None:
        """Absent or null means root; a string is a single parent; a list is a join."""

        if value is None:
            return None
        if isinstance(value, str):
            if not value:
                raise ValueError("previous must not be an empty string")
            return [value]
        if isinstance(value, list):
            if not value:
                raise ValueError("previous must be null for a root stage, not an empty list")
            if not all(isinstance(item, str) and item for item in value):
                raise ValueError("previous entries must be non-empty strings")
            return list(value)
        raise ValueError("previous must be null, a stage id, or a list of stage ids")


class ManifestDocument(BaseModel):
    """A complete manifest: header fields plus the ordered stage list."""

    model_config = ConfigDict(extra="ignore")

    name: NonEmptyStr
    persona: NonEmptyStr
    description: str = ""
    category: str = ""
    version: str = "1.0.0"
    locked: bool = False
    authors: str = ""
    stages: list[StageDocument] = Field(min_length=1)

    @field_validator("version", "authors", mode="before")
    @classmethod
    def _stringify_numbers(cls, value: Any) -> Any:
        return _stringify(value)


class StageOverrideDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: NonEmptyStr
    skip: bool = False
    parameters: dict[str, Any] | None = None
    reason: str | None = None


class ScriptDocument(BaseModel):
    """A parameter/skip overlay anchored to a manifest."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    manifest: NonEmptyStr
    description: str = ""
    version: str = "1.0.0"
    authors: str = ""
    stages: list[StageOverrideDocument] = Field(default_factory=list)

    @field_validator("version", "authors", mode="before")
    @classmethod
    def _stringify_numbers(cls, value: Any) -> Any:
        return _stringify(value)
