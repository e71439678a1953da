"""Register names of the x86 back end."""

from __future__ import annotations

from dataclasses import dataclass

from .ir import IrSize


class RegisterError(ValueError):
    """A register number or operand size has no register name."""


@dataclass(frozen=True)
class RegisterSet:
    """The registers available on a 32- or 64-bit x86 target."""

    bits: int
    regs8: tuple[str, ...]
    regs16: tuple[str, ...]
    regs32: tuple[str, ...]
    regs64: tuple[str, ...]
    param_regs: tuple[int, ...]
    regsize: int
    sp: str
    bp: str
    ax: str
    bx: str
    dx: str
    dx_index: int

    @staticmethod
    def _pick(names: tuple[str, ...], i: int) -> str:
        if not 0 <= i < len(names):
            raise RegisterError("register out of range")
        return names[i]

    def reg8(self, i: int) -> str:
        """The 8-bit name of register `i`."""
        return self._pick(self.regs8, i)

    def reg16(self, i: int) -> str:
        """The 16-bit name of register `i`."""
        return self._pick(self.regs16, i)

    def reg32(self, i: int) -> str:
        """The 32-bit name of register `i`."""
        return self._pick(self.regs32, i)

    def reg64(self, i: int) -> str:
        """The 64-bit name of register `i`."""
        return self._pick(self.regs64, i)

    def mreg(self, i: int) -> str:
        """The full machine-word name of register `i`."""
        return self.reg64(i) if self.bits == 64 else self.reg32(i)

    def reg_op(self, i: int, size: IrSize) -> str:
        """The name of register `i` when used with operands of `size`."""
        if size in (IrSize.BYTE, IrSize.CHAR):
            return self.reg8(i)
        if size is IrSize.SHORT:
            return self.reg16(i)
        if size is IrSize.INT:
            return self.reg32(i)
        if size in (IrSize.PTR, IrSize.LONG):
            return self.mreg(i)
        raise RegisterError(f"unsupported operand size '{IrSize(size).name.lower()}'")


_REGS32 = RegisterSet(
    bits=32,
    regs8=("al", "cl", "dl"),
    regs16=("ax", "cx", "dx"),
    regs32=("eax", "ecx", "edx"),
    regs64=(),
    param_regs=(),
    regsize=4,
    sp="esp",
    bp="ebp",
    ax="eax",
    bx="ebx",
    dx="edx",
    dx_index=2,
)

_REGS64 = RegisterSet(
    bits=64,
    regs8=("al", "dil", "sil", "dl", "cl", "r8b", "r9b", "r10b", "r11b"),
    regs16=("ax", "di", "si", "dx", "cx", "r8w", "r9w", "r10w", "r11w"),
    regs32=("eax", "edi", "esi", "edx", "ecx", "r8d", "r9d", "r10d", "r11d"),
    regs64=("rax", "rdi", "rsi", "rdx", "rcx", "r8", "r9", "r10", "r11"),
    param_regs=(1, 2, 3, 4, 5, 6),
    regsize=8,
    sp="rsp",
    bp="rbp",
    ax="rax",
    bx="rbx",
    dx="rdx",
    dx_index=3,
)


def register_set(bits: int) -> RegisterSet:
    """The register set of a 32- or 64-bit target."""
    if bits == 32:
        return _REGS32
    if bits == 64:
        return _REGS64
    raise ValueError(f"unsupported target width: {bits} bits")