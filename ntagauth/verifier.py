import asyncio
from typing import Optional, Union

from loguru import logger
from pydantic import ValidationError

from .ledger import LedgerUnavailable, ReplayLedger, create_ledger
from .models import (
    DecodedPicc,
    ErrorKind,
    PiccMessage,
    VerificationOutcome,
    VerifyMode,
)
from .nxp424 import (
    BLOCK_SIZE,
    MalformedInput,
    TruncatedPlaintext,
    decode_picc,
    derive_session_key,
    parse_key,
    verify_mac,
)
from .settings import NtagAuthSettings, get_settings

DEFAULT_LEDGER_TIMEOUT = 2.0


def _finish(
    outcome: VerificationOutcome, mode: VerifyMode
) -> VerificationOutcome:
    if outcome.valid:
        logger.info(
            f"SUN accepted uid={outcome.uid} counter={outcome.counter} "
            f"mode={mode.value}"
        )
    else:
        logger.warning(
            f"SUN rejected uid={outcome.uid} counter={outcome.counter} "
            f"mode={mode.value} reason={outcome.reason.value}"
        )
    return outcome


async def verify_sun(
    message: PiccMessage,
    key: bytes,
    mode: VerifyMode = VerifyMode.STRICT,
    ledger: Optional[ReplayLedger] = None,
    ledger_timeout: float = DEFAULT_LEDGER_TIMEOUT,
) -> VerificationOutcome:
    """Authenticate one SUN message.

    Decodes the PICC data, derives the session MAC key, checks the MAC
    and, in strict mode, consumes the read counter in ``ledger``. Every
    failure is reported through the returned outcome. The ledger is only
    written once all other checks have passed.
    """
    mode = VerifyMode(mode)
    if len(key) != 16:
        raise ValueError("Key must be 16 bytes.")

    # the MAC only covers the first block, so anything longer is refused
    if len(message.picc_data) != 2 * BLOCK_SIZE:
        return _finish(VerificationOutcome.rejected(ErrorKind.MALFORMED_INPUT), mode)

    try:
        uid, counter, plain = decode_picc(message.picc_data, key)
    except MalformedInput:
        return _finish(VerificationOutcome.rejected(ErrorKind.MALFORMED_INPUT), mode)
    except TruncatedPlaintext:
        return _finish(
            VerificationOutcome.rejected(ErrorKind.TRUNCATED_PLAINTEXT), mode
        )

    decoded = DecodedPicc(uid=uid, counter=counter, plaintext=plain.hex().upper())

    session_key = derive_session_key(key, decoded.uid_bytes, decoded.counter)
    if not verify_mac(session_key, b"", bytes.fromhex(message.cmac)):
        return _finish(
            VerificationOutcome.rejected(ErrorKind.MAC_MISMATCH, decoded), mode
        )

    if mode is VerifyMode.PROBE_ONLY:
        return _finish(VerificationOutcome.accepted(decoded), mode)

    if ledger is None:
        raise ValueError("Strict verification requires a replay ledger.")

    try:
        fresh = await asyncio.wait_for(
            ledger.try_accept(decoded.uid, decoded.counter), timeout=ledger_timeout
        )
    except asyncio.TimeoutError:
        logger.error(f"Replay ledger timed out after {ledger_timeout}s")
        return _finish(
            VerificationOutcome.rejected(ErrorKind.LEDGER_UNAVAILABLE, decoded), mode
        )
    except LedgerUnavailable:
        return _finish(
            VerificationOutcome.rejected(ErrorKind.LEDGER_UNAVAILABLE, decoded), mode
        )
    except Exception as exc:
        logger.error(f"Replay ledger failed: {exc.__class__.__name__}")
        return _finish(
            VerificationOutcome.rejected(ErrorKind.LEDGER_UNAVAILABLE, decoded), mode
        )

    if not fresh:
        return _finish(
            VerificationOutcome.rejected(ErrorKind.REPLAY_DETECTED, decoded), mode
        )

    return _finish(VerificationOutcome.accepted(decoded), mode)


class SunVerifier:
    """Deployment-wide verifier: one SDM key, one replay ledger."""

    def __init__(
        self,
        key: Union[bytes, str],
        ledger: Optional[ReplayLedger] = None,
        ledger_timeout: float = DEFAULT_LEDGER_TIMEOUT,
    ):
        if isinstance(key, str):
            key = parse_key(key)
        if len(key) != 16:
            raise ValueError("Key must be 16 bytes.")
        self._key = key
        self.ledger = ledger
        self.ledger_timeout = ledger_timeout

    @classmethod
    async def from_settings(
        cls, config: Optional[NtagAuthSettings] = None
    ) -> "SunVerifier":
        config = config or get_settings()
        ledger = create_ledger(config.ledger_url, config.replay_window)
        await ledger.start()
        return cls(config.key_bytes, ledger, config.ledger_timeout)

    async def verify(
        self, picc_data: str, cmac: str, mode: VerifyMode = VerifyMode.STRICT
    ) -> VerificationOutcome:
        try:
            message = PiccMessage(picc_data=picc_data, cmac=cmac)
        except ValidationError:
            return _finish(
                VerificationOutcome.rejected(ErrorKind.MALFORMED_INPUT),
                VerifyMode(mode),
            )
        return await self.verify_message(message, mode)

    async def verify_message(
        self, message: PiccMessage, mode: VerifyMode = VerifyMode.STRICT
    ) -> VerificationOutcome:
        return await verify_sun(
            message, self._key, mode, self.ledger, self.ledger_timeout
        )

    async def verify_url(
        self, url: str, mode: VerifyMode = VerifyMode.STRICT
    ) -> VerificationOutcome:
        try:
            message = PiccMessage.from_url(url)
        except ValidationError:
            message = None
        if message is None:
            return _finish(
                VerificationOutcome.rejected(ErrorKind.MALFORMED_INPUT),
                VerifyMode(mode),
            )
        return await self.verify_message(message, mode)

    def decode(self, picc_data: str) -> Optional[DecodedPicc]:
        """Recover UID and counter without authenticating the message."""
        try:
            uid, counter, plain = decode_picc(picc_data.strip(), self._key)
        except ValueError:
            return None
        return DecodedPicc(uid=uid, counter=counter, plaintext=plain.hex().upper())

    async def close(self) -> None:
        if self.ledger:
            await self.ledger.close()
