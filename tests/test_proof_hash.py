"""Tests for canonical hashing and proof verification."""

from fakes import WALLET_A, make_output
from usage_proof.core.models import CoreOutput
from usage_proof.services.proof_hash import (
    canonical_json,
    compute_canonical_hash,
    verify_proof,
)


def output_for(window, **kwargs):
    return CoreOutput.model_validate(
        make_output(WALLET_A, window.model_dump(mode="json"), **kwargs)
    )


def test_hash_is_0x_prefixed_keccak256(window):
    digest = compute_canonical_hash(output_for(window))
    assert digest.startswith("0x")
    assert len(digest) == 66


def test_embedded_proof_verifies(window):
    assert verify_proof(output_for(window))


def test_tampered_usage_fails_verification(window):
    output = output_for(window)
    tampered = output.model_copy(update={
        "usage_summary": output.usage_summary.model_copy(update={"tx_count": 999})
    })
    assert not verify_proof(tampered)


def test_hash_ignores_proof_field_and_key_order(window):
    output = output_for(window)
    reshuffled = CoreOutput.model_validate(
        dict(reversed(list(output.model_dump(mode="json").items())))
    )
    swapped = output.model_copy(update={
        "proof": output.proof.model_copy(update={"canonical_hash": "0xdead"})
    })

    assert compute_canonical_hash(reshuffled) == compute_canonical_hash(output)
    assert compute_canonical_hash(swapped) == compute_canonical_hash(output)
    assert '"proof"' not in canonical_json(output)


def test_unknown_hash_algorithm_fails(window):
    output = output_for(window)
    other = output.model_copy(update={
        "proof": output.proof.model_copy(update={"hash_algorithm": "sha256"})
    })
    assert not verify_proof(other)
