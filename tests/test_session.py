import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sevkit.key import Key
from sevkit.session import (
    Build,
    Measurement,
    MeasurementMismatchError,
    Session,
    VerifiedSession,
)

DIGEST = bytes(
    [
        0xE3, 0xB0, 0xC4, 0x42, 0x98, 0xFC, 0x1C, 0x14, 0x9A, 0xFB, 0xF4, 0xC8, 0x99, 0x6F,
        0xB9, 0x24, 0x27, 0xAE, 0x41, 0xE4, 0x64, 0x9B, 0x93, 0x4C, 0xA4, 0x95, 0x99, 0x1B,
        0x78, 0x52, 0xB8, 0x55,
    ]
)

MEASURE = bytes(
    [
        0x6F, 0xAA, 0xB2, 0xDA, 0xAE, 0x38, 0x9B, 0xCD, 0x34, 0x05, 0xA0, 0x5D, 0x6C, 0xAF,
        0xE3, 0x3C, 0x04, 0x14, 0xF7, 0xBE, 0xDD, 0x0B, 0xAE, 0x19, 0xBA, 0x5F, 0x38, 0xB7,
        0xFD, 0x16, 0x64, 0xEA,
    ]
)

MNONCE = bytes(
    [
        0x4F, 0xBE, 0x0B, 0xED, 0xBA, 0xD6, 0xC8, 0x6A, 0xE8, 0xF6, 0x89, 0x71, 0xD1, 0x03,
        0xE5, 0x54,
    ]
)

TIK = bytes(
    [
        0x66, 0x32, 0x0D, 0xB7, 0x31, 0x58, 0xA3, 0x5A, 0x25, 0x5D, 0x05, 0x17, 0x58, 0xE9,
        0x5E, 0xD4,
    ]
)

BUILD = Build(major=0x00, minor=0x12, build=0x0F)


def _session():
    return Session(policy=0, tek=Key.zeroed(16), tik=Key(TIK))


def test_session_wrapping():
    session = Session(policy=0, tek=Key(bytes(16)), tik=Key(bytes(16)))
    launch = session.session(bytes(16), bytes(16), Key.zeroed(16))

    assert launch.wrap_iv == bytes(16)
    assert launch.nonce == bytes(16)
    assert launch.wrap_tk == bytes(
        [
            0x21, 0x37, 0xBC, 0x7F, 0x9B, 0xB8, 0xBD, 0x7C, 0x3E, 0x55, 0xA5, 0x76, 0xA1, 0x5D,
            0x34, 0x54, 0xB3, 0x85, 0x6B, 0x8B, 0xA2, 0x7A, 0xFA, 0xDF, 0x46, 0xDC, 0xFE, 0xE9,
            0xF0, 0x2C, 0x02, 0xC4,
        ]
    )
    assert launch.wrap_mac == bytes(
        [
            0x31, 0x76, 0xC0, 0x75, 0x27, 0x38, 0xBD, 0x9D, 0x5E, 0x86, 0x68, 0x95, 0x34, 0x02,
            0x0F, 0x52, 0x8C, 0x08, 0x8F, 0x16, 0x23, 0x88, 0x26, 0xB0, 0x00, 0xB3, 0x27, 0xDE,
            0xE6, 0xAE, 0xED, 0x7D,
        ]
    )
    assert launch.policy_mac == bytes(
        [
            0xAA, 0x78, 0x55, 0xE1, 0x38, 0x39, 0xDD, 0x76, 0x7C, 0xD5, 0xDA, 0x7C, 0x1F, 0xF5,
            0x03, 0x65, 0x40, 0xC9, 0x26, 0x4B, 0x7A, 0x80, 0x30, 0x29, 0x31, 0x5E, 0x55, 0x37,
            0x52, 0x87, 0xB4, 0xAF,
        ]
    )


def test_verify_accepts_matching_measurement():
    measurement = Measurement(measure=MEASURE, mnonce=MNONCE)
    verified = _session().verify(DIGEST, BUILD, measurement)
    assert verified.measurement == measurement


def test_verify_rejects_tampered_measurement():
    tampered = bytes([MEASURE[0] ^ 1]) + MEASURE[1:]
    with pytest.raises(MeasurementMismatchError):
        _session().verify(DIGEST, BUILD, Measurement(measure=tampered, mnonce=MNONCE))


def test_verify_rejects_other_build():
    with pytest.raises(MeasurementMismatchError):
        _session().verify(DIGEST, Build(0, 0x11, 0x0F), Measurement(MEASURE, MNONCE))


def test_measuring_session_empty_digest_matches():
    measuring = _session().measure()
    verified = measuring.verify(BUILD, Measurement(MEASURE, MNONCE))
    assert verified.measurement.measure == MEASURE


def test_measuring_session_extra_data_mismatches():
    measuring = _session().measure()
    measuring.update_data(b"extra")
    with pytest.raises(MeasurementMismatchError):
        measuring.verify(BUILD, Measurement(MEASURE, MNONCE))


def test_verify_with_digest():
    measuring = _session().measure()
    measuring.update_data(b"ignored")
    verified = measuring.verify_with_digest(BUILD, Measurement(MEASURE, MNONCE), DIGEST)
    assert verified.measurement.mnonce == MNONCE


def test_create_generates_distinct_keys():
    session = Session.create(0)
    assert len(session.tek) == 16
    assert len(session.tik) == 16
    assert session.tek != session.tik
    assert session.policy == bytes(4)


def test_policy_must_be_four_bytes():
    with pytest.raises(ValueError):
        Session(policy=b"\x00\x01", tek=Key.zeroed(16), tik=Key.zeroed(16))


def test_measurement_field_sizes_checked():
    with pytest.raises(ValueError):
        Measurement(measure=bytes(31), mnonce=bytes(16))


def test_secret_decrypts_to_plaintext():
    tek = Key(bytes(range(16)))
    verified = Session(policy=0, tek=tek, tik=Key(TIK)).mock_verify(
        Measurement(MEASURE, MNONCE)
    )
    payload = b"\xf4" * 16
    secret = verified.secret(0, payload)

    assert secret.header.flags == bytes(4)
    assert len(secret.header.iv) == 16
    assert len(secret.header.mac) == 32
    assert len(secret.ciphertext) == len(payload)
    decryptor = Cipher(algorithms.AES(bytes(tek)), modes.CTR(secret.header.iv)).decryptor()
    assert decryptor.update(secret.ciphertext) + decryptor.finalize() == payload


def test_secret_uses_fresh_iv():
    verified = VerifiedSession(bytes(4), Key.zeroed(16), Key.zeroed(16), Measurement(MEASURE, MNONCE))
    first = verified.secret(0, b"data")
    second = verified.secret(0, b"data")
    assert first.header.iv != second.header.iv
    assert first.header.mac != second.header.mac


def test_build_ordering():
    assert Build(0, 14, 0) < Build(0, 17, 3)
    assert Build(1, 0, 0) > Build(0, 255, 255)