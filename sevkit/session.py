"""A secure channel with the AMD SP for SEV launch and attestation."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass, field
from typing import Union

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sevkit.key import Key

__all__ = [
    "MeasurementMismatchError",
    "Build",
    "Measurement",
    "LaunchSession",
    "Header",
    "Secret",
    "Session",
    "MeasuringSession",
    "VerifiedSession",
]

BytesLike = Union[bytes, bytearray, memoryview]
Word = Union[int, BytesLike]


class MeasurementMismatchError(ValueError):
    """Raised when the AMD SP's measurement does not match the expected one."""


def _word(value: Word, name: str) -> bytes:
    """A 4-byte field given as an integer (little-endian) or as raw bytes."""
    if isinstance(value, int):
        return value.to_bytes(4, "little")
    data = bytes(value)
    if len(data) != 4:
        raise ValueError(f"{name} must be 4 bytes, got {len(data)}")
    return data


def _fixed(value: BytesLike, size: int, name: str) -> bytes:
    data = bytes(value)
    if len(data) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(data)}")
    return data


def _aes_128_ctr(key: Key, iv: bytes, data: bytes) -> bytes:
    encryptor = Cipher(algorithms.AES(bytes(key)), modes.CTR(iv)).encryptor()
    return encryptor.update(data) + encryptor.finalize()


@dataclass(frozen=True, order=True)
class Build:
    """A firmware API version and build number."""

    major: int = 0
    minor: int = 0
    build: int = 0


@dataclass(frozen=True)
class Measurement:
    """The launch measurement reported by the AMD SP."""

    measure: bytes
    mnonce: bytes

    def __post_init__(self):
        object.__setattr__(self, "measure", _fixed(self.measure, 32, "measure"))
        object.__setattr__(self, "mnonce", _fixed(self.mnonce, 16, "mnonce"))


@dataclass(frozen=True)
class LaunchSession:
    """Wrapped transport keys and MACs handed to the AMD SP at launch start."""

    nonce: bytes
    wrap_tk: bytes
    wrap_iv: bytes
    wrap_mac: bytes
    policy_mac: bytes


@dataclass(frozen=True)
class Header:
    """The header of a secret packet."""

    flags: bytes
    iv: bytes
    mac: bytes


@dataclass(frozen=True)
class Secret:
    """An encrypted secret ready to be injected into the guest."""

    header: Header
    ciphertext: bytes


@dataclass
class Session:
    """A new secure channel holding the transport encryption and integrity keys."""

    policy: bytes
    tek: Key
    tik: Key

    def __post_init__(self):
        self.policy = _word(self.policy, "policy")

    @classmethod
    def create(cls, policy: Word = 0) -> "Session":
        """A session with freshly generated random transport keys."""
        return cls(policy=policy, tek=Key.random(16), tik=Key.random(16))

    def session(self, nonce: BytesLike, iv: BytesLike, z: Key) -> LaunchSession:
        """Wrap the transport keys under keys derived from the shared secret ``z``."""
        nonce = _fixed(nonce, 16, "nonce")
        iv = _fixed(iv, 16, "iv")
        master = z.derive(16, nonce, "sev-master-secret")
        kek = master.derive(16, b"", "sev-kek")
        kik = master.derive(16, b"", "sev-kik")
        master.wipe()

        wrap = _aes_128_ctr(kek, iv, bytes(self.tek) + bytes(self.tik))
        if len(wrap) != 32:
            raise ValueError("transport keys must be 16 bytes each")
        wrap_mac = kik.mac(wrap)
        kek.wipe()
        kik.wipe()

        return LaunchSession(
            nonce=nonce,
            wrap_tk=wrap,
            wrap_iv=iv,
            wrap_mac=wrap_mac,
            policy_mac=self.tik.mac(self.policy),
        )

    def measure(self) -> "MeasuringSession":
        """Move to the measuring state, collecting data into a SHA-256 digest."""
        return MeasuringSession(self.policy, self.tek, self.tik)

    def verify(self, digest: BytesLike, build: Build, msr: Measurement) -> "VerifiedSession":
        """Check the AMD SP's measurement against ``digest``."""
        message = (
            b"\x04"
            + bytes([build.major, build.minor, build.build])
            + self.policy
            + bytes(digest)
            + msr.mnonce
        )
        expected = self.tik.mac(message)
        if not hmac.compare_digest(expected, msr.measure):
            raise MeasurementMismatchError("launch measurement does not match")
        return VerifiedSession(self.policy, self.tek, self.tik, msr)

    def mock_verify(self, msr: Measurement) -> "VerifiedSession":
        """Accept ``msr`` without checking it; for tests and unattested use only."""
        return VerifiedSession(self.policy, self.tek, self.tik, msr)


@dataclass
class MeasuringSession:
    """A session accumulating the data the AMD SP also measures."""

    policy: bytes
    tek: Key
    tik: Key
    _hasher: "hashlib._Hash" = field(default_factory=hashlib.sha256, repr=False)

    def update_data(self, data: BytesLike) -> None:
        """Add ``data`` to the running digest."""
        self._hasher.update(bytes(data))

    def verify(self, build: Build, msr: Measurement) -> "VerifiedSession":
        """Check the AMD SP's measurement against the digest collected so far."""
        return self.verify_with_digest(build, msr, self._hasher.digest())

    def verify_with_digest(
        self, build: Build, msr: Measurement, digest: BytesLike
    ) -> "VerifiedSession":
        """Check the AMD SP's measurement against an externally computed digest."""
        return Session(self.policy, self.tek, self.tik).verify(digest, build, msr)


@dataclass
class VerifiedSession:
    """A session whose measurement agrees with the AMD SP's."""

    policy: bytes
    tek: Key
    tik: Key
    measurement: Measurement

    def secret(self, flags: Word, data: BytesLike) -> Secret:
        """Encrypt and authenticate ``data`` for injection into the guest."""
        flags = _word(flags, "flags")
        data = bytes(data)
        iv = secrets.token_bytes(16)
        ciphertext = _aes_128_ctr(self.tek, iv, data)
        if len(data) >= 1 << 32:
            raise ValueError("secret is too large")

        message = (
            b"\x01"
            + flags
            + iv
            + len(data).to_bytes(4, "little")
            + len(ciphertext).to_bytes(4, "little")
            + ciphertext
            + self.measurement.measure
        )
        mac = self.tik.mac(message)
        return Secret(header=Header(flags=flags, iv=iv, mac=mac), ciphertext=ciphertext)