import pytest
from pydantic import ValidationError

from ntagauth.models import (
    DecodedPicc,
    ErrorKind,
    PiccMessage,
    VerificationOutcome,
    VerifyMode,
)

from vectors import REF_CMAC, REF_PICC, REF_UID


def test_message_normalizes_case_and_whitespace():
    message = PiccMessage(picc_data=f" {REF_PICC.lower()} ", cmac=REF_CMAC.lower())
    assert message.picc_data == REF_PICC
    assert message.cmac == REF_CMAC


@pytest.mark.parametrize(
    "cmac",
    ["", "F9DAF12E0CFCF3", "F9DAF12E0CFCF36300", "ZZDAF12E0CFCF363", "F9DA F12E0CFCF36"],
)
def test_message_rejects_bad_cmac(cmac):
    with pytest.raises(ValidationError):
        PiccMessage(picc_data=REF_PICC, cmac=cmac)


@pytest.mark.parametrize(
    "url",
    [
        f"https://example.com/tag?picc_data={REF_PICC}&cmac={REF_CMAC}",
        f"https://example.com/tag?p={REF_PICC}&c={REF_CMAC}",
        f"https://example.com/tag?enc={REF_PICC.lower()}&c={REF_CMAC.lower()}",
    ],
)
def test_message_from_url(url):
    message = PiccMessage.from_url(url)
    assert message is not None
    assert message.picc_data == REF_PICC
    assert message.cmac == REF_CMAC


def test_message_from_url_prefers_picc_data():
    message = PiccMessage.from_url(
        f"https://example.com/?p=00&picc_data={REF_PICC}&cmac={REF_CMAC}"
    )
    assert message.picc_data == REF_PICC


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/tag",
        f"https://example.com/tag?picc_data={REF_PICC}",
        f"https://example.com/tag?cmac={REF_CMAC}",
        f"https://example.com/tag?picc_data=&cmac={REF_CMAC}",
    ],
)
def test_message_from_url_missing(url):
    assert PiccMessage.from_url(url) is None


def test_decoded_picc_bounds():
    decoded = DecodedPicc(uid=REF_UID, counter=2**24 - 1, plaintext="")
    assert decoded.uid_bytes == bytes.fromhex(REF_UID)
    with pytest.raises(ValidationError):
        DecodedPicc(uid=REF_UID, counter=2**24, plaintext="")
    with pytest.raises(ValidationError):
        DecodedPicc(uid=REF_UID.lower(), counter=1, plaintext="")


def test_outcome_rejected_without_decode():
    outcome = VerificationOutcome.rejected(ErrorKind.MALFORMED_INPUT)
    assert not outcome
    assert outcome.uid is None
    assert outcome.counter is None


def test_outcome_accepted():
    decoded = DecodedPicc(uid=REF_UID, counter=66, plaintext="C7")
    outcome = VerificationOutcome.accepted(decoded)
    assert outcome
    assert outcome.reason is None
    assert outcome.model_dump()["uid"] == REF_UID


def test_enum_values():
    assert ErrorKind.REPLAY_DETECTED.value == "ReplayDetected"
    assert VerifyMode("probe_only") is VerifyMode.PROBE_ONLY
