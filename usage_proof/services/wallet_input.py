"""
Wallet input normalization.
Parses free text into typed, deduplicated address / ENS / invalid entries.
"""
import re
from typing import List, Set

from usage_proof.core.enums import InputKind
from usage_proof.core.models import NormalizedInput, WalletInputEntry


ADDRESS_PATTERN = re.compile(r"^0x[a-f0-9]{40}$")
ENS_PATTERN = re.compile(r"^[a-z0-9-]+(\.[a-z0-9-]+)*\.eth$")
TOKEN_SEPARATORS = re.compile(r"[\s,]+")

ENS_MIN_LENGTH = 5
ENS_MAX_LENGTH = 255


def canonicalize(value: str) -> str:
    """Single canonical key for addresses and ENS names everywhere downstream."""
    return value.strip().lower()


def is_valid_address(value: str) -> bool:
    return bool(ADDRESS_PATTERN.match(value))


def is_valid_ens(value: str) -> bool:
    if not value.endswith(".eth"):
        return False
    if len(value) < ENS_MIN_LENGTH or len(value) > ENS_MAX_LENGTH:
        return False
    return bool(ENS_PATTERN.match(value))


def normalize_wallet_input(raw_text: str) -> NormalizedInput:
    """
    Classify every token of `raw_text` as address, ENS name, or invalid.

    Addresses and ENS names are lowercased and deduplicated per kind; invalid
    tokens keep their original spelling. First occurrence wins for ordering.
    """
    tokens = [token for token in TOKEN_SEPARATORS.split(raw_text or "") if token]

    inputs: List[WalletInputEntry] = []
    addresses: List[str] = []
    ens_names: List[str] = []
    invalid: List[str] = []

    seen_addresses: Set[str] = set()
    seen_ens: Set[str] = set()
    seen_invalid: Set[str] = set()

    for token in tokens:
        normalized = canonicalize(token)

        if is_valid_address(normalized):
            if normalized in seen_addresses:
                continue
            seen_addresses.add(normalized)
            inputs.append(WalletInputEntry(raw=token, kind=InputKind.ADDRESS, normalized=normalized))
            addresses.append(normalized)
            continue

        if is_valid_ens(normalized):
            if normalized in seen_ens:
                continue
            seen_ens.add(normalized)
            inputs.append(WalletInputEntry(raw=token, kind=InputKind.ENS, normalized=normalized))
            ens_names.append(normalized)
            continue

        if token not in seen_invalid:
            seen_invalid.add(token)
            inputs.append(WalletInputEntry(raw=token, kind=InputKind.INVALID))
            invalid.append(token)

    return NormalizedInput(
        inputs=inputs,
        addresses=addresses,
        ens_names=ens_names,
        invalid=invalid
    )
