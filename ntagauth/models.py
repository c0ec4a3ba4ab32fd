from enum import Enum
from typing import Optional
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, Field, field_validator

from .nxp424 import HEX_RE

PICC_DATA_PARAMS = ("picc_data", "p", "enc")
CMAC_PARAMS = ("cmac", "c")


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "MalformedInput"
    TRUNCATED_PLAINTEXT = "TruncatedPlaintext"
    MAC_MISMATCH = "MacMismatch"
    REPLAY_DETECTED = "ReplayDetected"
    LEDGER_UNAVAILABLE = "LedgerUnavailable"


class VerifyMode(str, Enum):
    """How much of the verification pipeline runs.

    ``STRICT`` authenticates the message and consumes its counter in the
    replay ledger. ``PROBE_ONLY`` authenticates the message but neither
    consults nor updates the ledger, so a tag that is not yet bound to an
    account can be recognised without burning the counter that its first
    real verification will carry. A probe therefore says nothing about
    freshness and must never grant access on its own.
    """

    STRICT = "strict"
    PROBE_ONLY = "probe_only"


class PiccMessage(BaseModel):
    picc_data: str = Field(description="Encrypted PICC data, hex.")
    cmac: str = Field(description="Truncated SDM MAC, hex.")

    @field_validator("picc_data", "cmac")
    @classmethod
    def normalize_hex(cls, value: str) -> str:
        # some readers send everything as lower case
        return value.strip().upper()

    @field_validator("cmac")
    @classmethod
    def check_cmac(cls, value: str) -> str:
        if len(value) != 16 or not HEX_RE.fullmatch(value):
            raise ValueError("cmac must be 8 bytes (16 hex characters).")
        return value

    @classmethod
    def from_url(cls, url: str) -> Optional["PiccMessage"]:
        query = parse_qs(urlparse(url).query)
        picc_data = next((query[p][0] for p in PICC_DATA_PARAMS if p in query), None)
        cmac = next((query[c][0] for c in CMAC_PARAMS if c in query), None)
        if not picc_data or not cmac:
            return None
        return cls(picc_data=picc_data, cmac=cmac)


class DecodedPicc(BaseModel):
    uid: str = Field(pattern=r"^[0-9A-F]{14}$")
    counter: int = Field(ge=0, le=2**24 - 1)
    plaintext: str

    @property
    def uid_bytes(self) -> bytes:
        return bytes.fromhex(self.uid)


class VerificationOutcome(BaseModel):
    """Result of one verification.

    ``plaintext`` is the decrypted PICC block covered by the MAC, only
    set on accepted messages.
    """

    valid: bool
    reason: Optional[ErrorKind] = None
    uid: Optional[str] = None
    counter: Optional[int] = None
    plaintext: Optional[str] = None

    @classmethod
    def rejected(
        cls, reason: ErrorKind, decoded: Optional[DecodedPicc] = None
    ) -> "VerificationOutcome":
        if decoded is None:
            return cls(valid=False, reason=reason)
        return cls(
            valid=False, reason=reason, uid=decoded.uid, counter=decoded.counter
        )

    @classmethod
    def accepted(cls, decoded: DecodedPicc) -> "VerificationOutcome":
        return cls(
            valid=True,
            uid=decoded.uid,
            counter=decoded.counter,
            plaintext=decoded.plaintext,
        )

    def __bool__(self) -> bool:
        return self.valid
