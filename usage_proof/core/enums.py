"""
Core enums and types for the proof-of-usage engine.
Defines window types, behavior tags, and result provenance.
"""
from enum import Enum


class WindowType(str, Enum):
    """Usage window presets."""
    LAST_7_DAYS = "last_7_days"
    LAST_14_DAYS = "last_14_days"
    LAST_30_DAYS = "last_30_days"
    CUSTOM = "custom"


class BehaviorTag(str, Enum):
    """Classification of a wallet's usage pattern."""
    ORGANIC = "organic"
    SUSPECTED_FARM = "suspected_farm"
    INACTIVE = "inactive"
    MIXED = "mixed"


class DataSource(str, Enum):
    """Richest tier that produced a result row."""
    COMMENTARY = "commentary"
    INSIGHTS = "insights"
    CORE = "core"


class InputKind(str, Enum):
    """Classification of a raw input token."""
    ADDRESS = "address"
    ENS = "ens"
    INVALID = "invalid"


class InputSource(str, Enum):
    """How a wallet entered the evaluation list."""
    ENS = "ens"
    ADDRESS = "address"


class UnresolvedReason(str, Enum):
    """Why an input was excluded from the evaluation wallet list."""
    RPC_MISSING = "rpc_missing"          # Resolver has no RPC configured
    RESOLVER_ERROR = "resolver_error"    # Resolver call failed
    NOT_FOUND = "not_found"              # Name has no address record
    INVALID_ADDRESS = "invalid_address"  # Resolved value is not a wallet address
