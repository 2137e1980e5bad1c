"""Content + lineage fingerprints.

``fp(stage) = sha256(canonical(content) || 0x00 || sorted parent entries)``

Parent entries are sorted by stage id before hashing, so the result does not
depend on declaration order. Identical content with identical parent
fingerprints always yields the same fingerprint; a change to either yields a
different one.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any, Protocol


def canonical_json(value: Any) -> str:
    """Deterministic JSON text: sorted keys, no insignificant whitespace."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def normalize_json(value: Any) -> Any:
    """Round-trip ``value`` through JSON so it matches what a reader will load.

    Raises:
        ValueError: If ``value`` is not JSON-serializable.
    """

    try:
        return json.loads(canonical_json(value))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Value is not JSON-serializable: {e}") from e


def compute_fingerprint(content: Any, parent_fingerprints: Mapping[str, str]) -> str:
    parent_part = ",".join(f"{key}:{parent_fingerprints[key]}" for key in sorted(parent_fingerprints))
    payload = canonical_json(content) + "\0" + parent_part
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class FingerprintHasher(Protocol):
    def compute(self, content: Any, parent_fingerprints: Mapping[str, str]) -> str: ...


class Sha256Hasher:
    """Default hasher; see :func:`compute_fingerprint`."""

    def compute(self, content: Any, parent_fingerprints: Mapping[str, str]) -> str:
        return compute_fingerprint(content, parent_fingerprints)
