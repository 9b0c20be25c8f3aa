"""Virtual Machine Save Area (VMSA) layout and initial register states."""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from sevkit.parser import InvalidDataError

__all__ = ["VmcbSegment", "Vmsa", "VMSA_PAGE_SIZE"]

VMSA_PAGE_SIZE = 4096

_ATTR_TYPE_SHIFT = 8
_ATTR_P_MASK = 1 << 15
_ATTR_S_MASK = 1 << 12
_ATTR_A_MASK = 1 << 8
_ATTR_CS_MASK = 1 << 11
_ATTR_R_MASK = 1 << 9
_ATTR_W_MASK = 1 << 9

_KVM_G_PAT = 0x0007040600070406

_SEGMENT = struct.Struct("<HHIQ")


@dataclass
class VmcbSegment:
    """A segment register as stored in a VMCB save area."""

    selector: int = 0
    attrib: int = 0
    limit: int = 0
    base: int = 0

    def _pack(self) -> bytes:
        try:
            return _SEGMENT.pack(self.selector, self.attrib, self.limit, self.base)
        except struct.error as exc:
            raise ValueError(f"segment field out of range: {exc}") from exc

    @classmethod
    def _unpack(cls, data: bytes) -> "VmcbSegment":
        return cls(*_SEGMENT.unpack(data))


_SEGMENT_NAMES = ("es", "cs", "ss", "ds", "fs", "gs", "gdtr", "ldtr", "idtr", "tr")

_LAYOUT = (
    *((name, "16s") for name in _SEGMENT_NAMES),
    ("reserved_1", "43s"),
    ("cpl", "B"),
    ("reserved_2", "4s"),
    ("efer", "Q"),
    ("reserved_3", "104s"),
    ("xss", "Q"),
    ("cr4", "Q"),
    ("cr3", "Q"),
    ("cr0", "Q"),
    ("dr7", "Q"),
    ("dr6", "Q"),
    ("rflags", "Q"),
    ("rip", "Q"),
    ("reserved_4", "88s"),
    ("rsp", "Q"),
    ("reserved_5", "24s"),
    ("rax", "Q"),
    ("star", "Q"),
    ("lstar", "Q"),
    ("cstar", "Q"),
    ("sfmask", "Q"),
    ("kernel_gs_base", "Q"),
    ("sysenter_cs", "Q"),
    ("sysenter_esp", "Q"),
    ("sysenter_eip", "Q"),
    ("cr2", "Q"),
    ("reserved_6", "32s"),
    ("g_pat", "Q"),
    ("dbgctl", "Q"),
    ("br_from", "Q"),
    ("br_to", "Q"),
    ("last_excp_from", "Q"),
    ("last_excp_to", "Q"),
    ("reserved_7", "72s"),
    ("spec_ctrl", "I"),
    ("reserved_7b", "4s"),
    ("pkru", "I"),
    ("reserved_7a", "20s"),
    ("reserved_8", "Q"),
    ("rcx", "Q"),
    ("rdx", "Q"),
    ("rbx", "Q"),
    ("reserved_9", "Q"),
    ("rbp", "Q"),
    ("rsi", "Q"),
    ("rdi", "Q"),
    ("r8", "Q"),
    ("r9", "Q"),
    ("r10", "Q"),
    ("r11", "Q"),
    ("r12", "Q"),
    ("r13", "Q"),
    ("r14", "Q"),
    ("r15", "Q"),
    ("reserved_10", "16s"),
    ("sw_exit_code", "Q"),
    ("sw_exit_info_1", "Q"),
    ("sw_exit_info_2", "Q"),
    ("sw_scratch", "Q"),
    ("reserved_11", "56s"),
    ("xcr0", "Q"),
    ("valid_bitmap", "16s"),
    ("x87_state_gpa", "Q"),
)

_VMSA = struct.Struct("<" + "".join(fmt for _, fmt in _LAYOUT))


@dataclass
class Vmsa:
    """The register state of a virtual CPU, in the layout of the VMCB save area."""

    es: VmcbSegment = field(default_factory=VmcbSegment)
    cs: VmcbSegment = field(default_factory=VmcbSegment)
    ss: VmcbSegment = field(default_factory=VmcbSegment)
    ds: VmcbSegment = field(default_factory=VmcbSegment)
    fs: VmcbSegment = field(default_factory=VmcbSegment)
    gs: VmcbSegment = field(default_factory=VmcbSegment)
    gdtr: VmcbSegment = field(default_factory=VmcbSegment)
    ldtr: VmcbSegment = field(default_factory=VmcbSegment)
    idtr: VmcbSegment = field(default_factory=VmcbSegment)
    tr: VmcbSegment = field(default_factory=VmcbSegment)
    reserved_1: bytes = bytes(43)
    cpl: int = 0
    reserved_2: bytes = bytes(4)
    efer: int = 0
    reserved_3: bytes = bytes(104)
    xss: int = 0
    cr4: int = 0
    cr3: int = 0
    cr0: int = 0
    dr7: int = 0
    dr6: int = 0
    rflags: int = 0
    rip: int = 0
    reserved_4: bytes = bytes(88)
    rsp: int = 0
    reserved_5: bytes = bytes(24)
    rax: int = 0
    star: int = 0
    lstar: int = 0
    cstar: int = 0
    sfmask: int = 0
    kernel_gs_base: int = 0
    sysenter_cs: int = 0
    sysenter_esp: int = 0
    sysenter_eip: int = 0
    cr2: int = 0
    reserved_6: bytes = bytes(32)
    g_pat: int = 0
    dbgctl: int = 0
    br_from: int = 0
    br_to: int = 0
    last_excp_from: int = 0
    last_excp_to: int = 0
    reserved_7: bytes = bytes(72)
    spec_ctrl: int = 0
    reserved_7b: bytes = bytes(4)
    pkru: int = 0
    reserved_7a: bytes = bytes(20)
    reserved_8: int = 0
    rcx: int = 0
    rdx: int = 0
    rbx: int = 0
    reserved_9: int = 0
    rbp: int = 0
    rsi: int = 0
    rdi: int = 0
    r8: int = 0
    r9: int = 0
    r10: int = 0
    r11: int = 0
    r12: int = 0
    r13: int = 0
    r14: int = 0
    r15: int = 0
    reserved_10: bytes = bytes(16)
    sw_exit_code: int = 0
    sw_exit_info_1: int = 0
    sw_exit_info_2: int = 0
    sw_scratch: int = 0
    reserved_11: bytes = bytes(56)
    xcr0: int = 0
    valid_bitmap: bytes = bytes(16)
    x87_state_gpa: int = 0

    def init_amd64(self) -> None:
        """Set the register state an amd64 CPU has after reset."""
        self.cr0 = 1 << 4
        self.rip = 0xFFF0

        self.cs.selector = 0xF000
        self.cs.base = 0xFFFF0000
        self.cs.limit = 0xFFFF

        for segment in (self.ds, self.es, self.fs, self.gs, self.ss,
                        self.gdtr, self.idtr, self.ldtr, self.tr):
            segment.limit = 0xFFFF

        self.dr6 = 0xFFFF0FF0
        self.dr7 = 0x0400
        self.rflags = 0x2
        self.xcr0 = 0x1

    def init_kvm(self) -> None:
        """Set the values KVM applies when it creates a guest vCPU."""
        # X86_CR4_MCE, mirrored from a host that has it enabled.
        self.cr4 = 0x40
        # EFER_SVME.
        self.efer = 0x1000
        # Present | LDT.
        self.ldtr.attrib = 0x0082
        # Present | busy 16-bit TSS.
        self.tr.attrib = 0x0083
        self.g_pat = _KVM_G_PAT

    def init_krun(self, cpu: int) -> None:
        """Set the values a krun guest starts with on vCPU ``cpu``."""
        self.rsi = 0x7000
        self.rbp = 0x8FF0
        self.rsp = 0x8FF0

        data_attrib = (_ATTR_P_MASK | _ATTR_S_MASK | _ATTR_W_MASK | _ATTR_A_MASK) >> _ATTR_TYPE_SHIFT
        self.cs.attrib = (_ATTR_P_MASK | _ATTR_S_MASK | _ATTR_CS_MASK | _ATTR_R_MASK) >> _ATTR_TYPE_SHIFT
        self.ds.attrib = data_attrib
        self.es.attrib = data_attrib
        self.ss.attrib = (_ATTR_P_MASK | _ATTR_S_MASK | _ATTR_W_MASK) >> _ATTR_TYPE_SHIFT
        self.fs.attrib = data_attrib
        self.gs.attrib = data_attrib

        if cpu > 0:
            self.rip = 0
            self.rsp = 0
            self.rbp = 0
            self.rsi = 0

            self.cs.selector = 0x9100
            self.cs.base = 0x91000

    def init_qemu(self, cpu: int) -> None:
        """Set the values QEMU applies on CPU reset; ``cpu`` does not change them."""
        data_attrib = (_ATTR_P_MASK | _ATTR_S_MASK | _ATTR_W_MASK | _ATTR_A_MASK) >> _ATTR_TYPE_SHIFT
        self.ldtr.attrib = (_ATTR_P_MASK | (2 << _ATTR_TYPE_SHIFT)) >> _ATTR_TYPE_SHIFT
        self.tr.attrib = (_ATTR_P_MASK | (11 << _ATTR_TYPE_SHIFT)) >> _ATTR_TYPE_SHIFT
        self.cs.attrib = (
            _ATTR_P_MASK | _ATTR_S_MASK | _ATTR_CS_MASK | _ATTR_R_MASK | _ATTR_A_MASK
        ) >> _ATTR_TYPE_SHIFT
        for segment in (self.ds, self.es, self.ss, self.fs, self.gs):
            segment.attrib = data_attrib

        self.g_pat = _KVM_G_PAT

    def cpu_sku(self, family: int, model: int, stepping: int) -> None:
        """Store the CPUID signature for ``family``/``model``/``stepping`` in RDX."""
        stepping &= 0xF
        model &= 0xFF
        family &= 0xFFF

        rdx = stepping
        if family > 0xF:
            rdx |= 0xF00 | ((family - 0x0F) << 20)
        else:
            rdx |= family << 8
        rdx |= ((model & 0xF) << 4) | ((model >> 4) << 16)
        self.rdx = rdx

    def reset_addr(self, ra: int) -> None:
        """Point the reset vector at ``ra``: high half to CS base, low half to RIP."""
        self.rip = ra & 0x0000FFFF
        self.cs.base = ra & 0xFFFF0000

    def to_bytes(self) -> bytes:
        """The packed binary layout of this save area."""
        values = []
        for name, fmt in _LAYOUT:
            value = getattr(self, name)
            if name in _SEGMENT_NAMES:
                value = value._pack()
            elif fmt.endswith("s"):
                value = bytes(value)
                expected = int(fmt[:-1])
                if len(value) != expected:
                    raise ValueError(f"{name} must be {expected} bytes, got {len(value)}")
            values.append(value)
        try:
            return _VMSA.pack(*values)
        except struct.error as exc:
            raise ValueError(f"VMSA field out of range: {exc}") from exc

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview]) -> "Vmsa":
        """Decode a save area from the start of ``data``; trailing bytes are ignored."""
        data = bytes(data)
        if len(data) < _VMSA.size:
            raise ValueError(f"expected at least {_VMSA.size} bytes, got {len(data)}")
        values = {}
        for (name, _), value in zip(_LAYOUT, _VMSA.unpack_from(data)):
            values[name] = VmcbSegment._unpack(value) if name in _SEGMENT_NAMES else value
        return cls(**values)

    @classmethod
    def from_file(cls, filename: Union[str, os.PathLike]) -> "Vmsa":
        """Read a save area from a file that must be exactly one 4096-byte page."""
        data = Path(filename).read_bytes()
        if len(data) != VMSA_PAGE_SIZE:
            raise InvalidDataError(f"Expected VMSA length {VMSA_PAGE_SIZE}, was {len(data)}")
        return cls.from_bytes(data)

    def to_file(self, filename: Union[str, os.PathLike]) -> None:
        """Write the save area to ``filename``, zero-padded to a 4096-byte page."""
        Path(filename).write_bytes(self.to_bytes().ljust(VMSA_PAGE_SIZE, b"\0"))