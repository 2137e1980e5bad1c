"""The persisted record of one stage execution.

The engine owns the envelope (metadata and fingerprints); stage code owns the
``content`` block. On disk an envelope is a JSON object with exactly the keys
``stage``, ``timestamp``, ``parameters_used``, ``content``, ``_fingerprint``
and ``_parent_fingerprints``.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from manifest_dag.errors import EnvelopeCorrupt
from manifest_dag.provenance.fingerprint import FingerprintHasher

SKIP_SENTINEL_KEY = "skipped"


class ArtifactEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    stage: str = Field(min_length=1)
    timestamp: str
    parameters_used: dict[str, Any] = Field(default_factory=dict)
    content: dict[str, Any]
    fingerprint: str = Field(alias="_fingerprint", min_length=1)
    parent_fingerprints: dict[str, str] = Field(alias="_parent_fingerprints")

    @field_validator("timestamp")
    @classmethod
    def _iso_timestamp(cls, value: str) -> str:
        datetime.fromisoformat(value)
        return value

    @property
    def created_at(self) -> datetime:
        created = datetime.fromisoformat(self.timestamp)
        return created if created.tzinfo is not None else created.replace(tzinfo=UTC)

    @property
    def is_skip_sentinel(self) -> bool:
        return is_skip_sentinel(self.content)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_json_bytes(self) -> bytes:
        return (json.dumps(self.to_json(), indent=2, ensure_ascii=False) + "\n").encode("utf-8")

    def verify(self, hasher: FingerprintHasher) -> bool:
        """Whether the stored fingerprint matches the stored content and lineage."""

        return hasher.compute(self.content, self.parent_fingerprints) == self.fingerprint

    @classmethod
    def from_json_bytes(cls, data: bytes, *, path: str = "") -> ArtifactEnvelope:
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EnvelopeCorrupt(path, f"not valid JSON ({e})") from e
        if not isinstance(raw, dict):
            raise EnvelopeCorrupt(path, "envelope must be a JSON object")
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise EnvelopeCorrupt(path, f"invalid envelope fields: {fields}") from e


def skip_sentinel(reason: str) -> dict[str, Any]:
    """Content block written in place of real output for a skipped stage."""

    return {SKIP_SENTINEL_KEY: True, "reason": reason}


def is_skip_sentinel(content: Any) -> bool:
    return isinstance(content, dict) and content.get(SKIP_SENTINEL_KEY) is True
