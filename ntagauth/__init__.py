from .ledger import (
    LedgerUnavailable,
    MemoryReplayLedger,
    ReplayLedger,
    SqlReplayLedger,
    create_ledger,
)
from .models import (
    DecodedPicc,
    ErrorKind,
    PiccMessage,
    VerificationOutcome,
    VerifyMode,
)
from .nxp424 import (
    DecodeError,
    MalformedInput,
    TruncatedPlaintext,
    decode_picc,
    derive_session_key,
    verify_mac,
)
from .settings import NtagAuthSettings, get_settings
from .verifier import SunVerifier, verify_sun

__all__ = [
    "DecodeError",
    "DecodedPicc",
    "ErrorKind",
    "LedgerUnavailable",
    "MalformedInput",
    "MemoryReplayLedger",
    "NtagAuthSettings",
    "PiccMessage",
    "ReplayLedger",
    "SqlReplayLedger",
    "SunVerifier",
    "TruncatedPlaintext",
    "VerificationOutcome",
    "VerifyMode",
    "create_ledger",
    "decode_picc",
    "derive_session_key",
    "get_settings",
    "verify_mac",
    "verify_sun",
]
