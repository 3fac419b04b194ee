"""
Canonical hashing of core outputs for offline proof auditing.
"""
import json
from typing import Any, Dict

from eth_utils import keccak

from usage_proof.core.models import CoreOutput


def canonical_payload(output: CoreOutput) -> Dict[str, Any]:
    """Every output field except the proof itself."""
    return output.model_dump(mode="json", exclude={"proof"})


def canonical_json(output: CoreOutput) -> str:
    return json.dumps(canonical_payload(output), sort_keys=True, separators=(",", ":"))


def compute_canonical_hash(output: CoreOutput) -> str:
    """keccak256 over sorted-key compact JSON, 0x-prefixed."""
    return "0x" + keccak(text=canonical_json(output)).hex()


def verify_proof(output: CoreOutput) -> bool:
    """True if the embedded canonical_hash matches a local recomputation."""
    if output.proof.hash_algorithm != "keccak256":
        return False
    return output.proof.canonical_hash.lower() == compute_canonical_hash(output)
