"""Fingerprinted artifact envelopes and the Merkle chain across them."""

from manifest_dag.provenance.chain import (
    ChainValidation,
    FingerprintRecord,
    StalenessResult,
    check_staleness,
    validate_chain,
)
from manifest_dag.provenance.engine import EnvelopeLookup, ProvenanceEngine
from manifest_dag.provenance.envelope import ArtifactEnvelope, is_skip_sentinel, skip_sentinel
from manifest_dag.provenance.fingerprint import (
    FingerprintHasher,
    Sha256Hasher,
    canonical_json,
    compute_fingerprint,
)

__all__ = [
    "ArtifactEnvelope",
    "ChainValidation",
    "EnvelopeLookup",
    "FingerprintHasher",
    "FingerprintRecord",
    "ProvenanceEngine",
    "Sha256Hasher",
    "StalenessResult",
    "canonical_json",
    "check_staleness",
    "compute_fingerprint",
    "is_skip_sentinel",
    "skip_sentinel",
    "validate_chain",
]
