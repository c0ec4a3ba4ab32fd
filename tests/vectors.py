from Cryptodome.Cipher import AES

from ntagauth.nxp424 import derive_session_key, get_sun_mac

ZERO_KEY = bytes(16)
OTHER_KEY = bytes.fromhex("00112233445566778899AABBCCDDEEFF")

# tag capture, all-zero key
REF_PICC = "9AA3D8DF06409B5AA4581429AE8C0611"
REF_CMAC = "F9DAF12E0CFCF363"
REF_UID = "04623EBA1E1E90"
REF_COUNTER = 66
REF_SESSION_KEY = "73B37BD9A2031CE0D79A8EFA0F7106DD"
REF_FULL_MAC = "57F924DAEEF1EE2E1D0C6BFC93F30163"

# NXP AN12196, all-zero key
AN12196_PICC = "EF963FF7828658A599F3041510671E88"
AN12196_CMAC = "94EED9EE65337086"
AN12196_UID = "04DE5F1EACC040"
AN12196_COUNTER = 61

# same UID as the tag capture, all-zero key, counter -> (picc_data, cmac)
SEQUENCE = {
    1: ("15B463BBF5B7BF3D0A09AFB25D51096A", "B5DF72CB50AB97F9"),
    2: ("1C5242F6072FCA85564FEF26D9BA50E6", "E9EBB33ACC73DACA"),
    3: ("B5557500C7B15C6EC66A16DEB06CF3F3", "2097B4BAB34EB6BE"),
    5: ("D94046DEF76D16F2FF352407952373AA", "1D71F73305843871"),
    10: ("823078351564CED4D5DE757A4FD06988", "F757A597C2F3ABB6"),
}

# UID 04DE5F1EACC040 under OTHER_KEY
OTHER_KEY_VECTORS = {
    66: ("9D7C72D783D22A77C20CBD94459F027B", "0606573B4DE6571B"),
    2**24 - 1: ("DB8513ECCFEE933C62E15A2AE5E03BB5", "952709917D15EBD5"),
}
OTHER_KEY_SESSION_KEY_66 = "6A1224ACAD2836BC736800002C2E1AD4"

# two blocks of PICC data, counter 7
TWO_BLOCK_PICC = (
    "C93C86AC5008FA1D6E17B0BF73A7C520E39C25BFD9C83EDB9889C5F3D409D4FA"
)
TWO_BLOCK_CMAC = "A8020B250D2576F5"


def make_sun(key: bytes, uid_hex: str, counter: int) -> tuple[str, str]:
    uid = bytes.fromhex(uid_hex)
    plain = b"\xc7" + uid + counter.to_bytes(3, "little") + b"\x00" * 5
    cipher = AES.new(key, AES.MODE_CBC, b"\x00" * 16)
    picc_data = cipher.encrypt(plain).hex().upper()
    cmac = get_sun_mac(derive_session_key(key, uid, counter)).hex().upper()
    return picc_data, cmac
