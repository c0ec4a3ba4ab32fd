# https://www.nxp.com/docs/en/application-note/AN12196.pdf

import hmac
import re

from Cryptodome.Cipher import AES
from Cryptodome.Hash import CMAC

SV2 = "3CC300010080"

BLOCK_SIZE = 16
UID_LENGTH = 7
COUNTER_LENGTH = 3
MAC_LENGTH = 8
MAX_COUNTER = 2**24 - 1

# marker byte, UID, counter
PLAINTEXT_MIN_LENGTH = 1 + UID_LENGTH + COUNTER_LENGTH

HEX_RE = re.compile(r"[0-9A-Fa-f]*")


class DecodeError(ValueError):
    """PICC data could not be turned into a UID and counter."""


class MalformedInput(DecodeError):
    pass


class TruncatedPlaintext(DecodeError):
    pass


def parse_key(key_hex: str) -> bytes:
    if not HEX_RE.fullmatch(key_hex):
        raise ValueError("Key is not valid hex.")
    key = bytes.fromhex(key_hex)
    if len(key) != 16:
        raise ValueError("Key must be 16 bytes (32 hex characters).")
    return key


def my_cmac(key: bytes, msg: bytes = b"") -> bytes:
    cobj = CMAC.new(key, ciphermod=AES)
    if msg != b"":
        cobj.update(msg)
    return cobj.digest()


def truncate_mac(mac: bytes) -> bytes:
    # SDM MACs keep the odd-indexed bytes of the full CMAC
    return mac[1::2]


def decrypt_blocks(data: bytes, key: bytes) -> bytes:
    ivbytes = b"\x00" * BLOCK_SIZE

    cipher = AES.new(key, AES.MODE_CBC, ivbytes)
    return cipher.decrypt(data)


def parse_picc_plaintext(plain: bytes) -> tuple[bytes, int]:
    """Split decrypted PICC data into the raw UID and the read counter.

    Layout: ``[marker][7 bytes UID][3 bytes counter, little endian][...]``.
    The marker and anything after the counter are not interpreted.
    """
    if len(plain) < PLAINTEXT_MIN_LENGTH:
        raise TruncatedPlaintext(
            f"Decrypted PICC data is {len(plain)} bytes, "
            f"need at least {PLAINTEXT_MIN_LENGTH}."
        )

    uid = plain[1 : 1 + UID_LENGTH]
    counter = plain[1 + UID_LENGTH : PLAINTEXT_MIN_LENGTH]

    return uid, int.from_bytes(counter, "little")


def decode_picc(picc_data_hex: str, key: bytes) -> tuple[str, int, bytes]:
    """Decrypt a SUN PICC data block.

    Returns the UID as uppercase hex, the read counter and the full
    plaintext. Raises :class:`MalformedInput` for input that is not hex
    or not a whole number of AES blocks, :class:`TruncatedPlaintext` if
    the plaintext cannot hold a UID and counter.
    """
    # bytes.fromhex would skip whitespace
    if not HEX_RE.fullmatch(picc_data_hex) or len(picc_data_hex) % 2:
        raise MalformedInput("PICC data is not valid hex.")
    sun = bytes.fromhex(picc_data_hex)

    if len(sun) < BLOCK_SIZE or len(sun) % BLOCK_SIZE != 0:
        raise MalformedInput(
            f"PICC data is {len(sun)} bytes, "
            f"expected a non-zero multiple of {BLOCK_SIZE}."
        )

    sun_plain = decrypt_blocks(sun, key)
    uid, counter = parse_picc_plaintext(sun_plain)

    return uid.hex().upper(), counter, sun_plain


def build_sv2(uid: bytes, counter: int) -> bytes:
    if len(uid) != UID_LENGTH:
        raise ValueError(f"UID must be {UID_LENGTH} bytes.")
    if not 0 <= counter <= MAX_COUNTER:
        raise ValueError("Counter does not fit in 3 bytes.")

    sv2prefix = bytes.fromhex(SV2)
    return sv2prefix + uid + counter.to_bytes(COUNTER_LENGTH, "little")


def derive_session_key(key: bytes, uid: bytes, counter: int) -> bytes:
    # the session key is a full CMAC, it is not truncated
    return my_cmac(key, build_sv2(uid, counter))


def get_sun_mac(session_key: bytes, mac_input: bytes = b"") -> bytes:
    return truncate_mac(my_cmac(session_key, mac_input))


def verify_mac(session_key: bytes, mac_input: bytes, provided_mac: bytes) -> bool:
    expected = get_sun_mac(session_key, mac_input)
    return hmac.compare_digest(expected, provided_mac)
