"""Core definitions of the x86 target and the assembler driver."""

from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass
from typing import Optional, Union

from .ir import IrSize
from .types import IntegerSize

_INT8_MIN, _INT8_MAX, _UINT8_MAX = -128, 127, 255
_INT16_MIN, _INT16_MAX, _UINT16_MAX = -32768, 32767, 65535
_INT32_MIN, _INT32_MAX, _UINT32_MAX = -2147483648, 2147483647, 4294967295
_INT64_MIN = -9223372036854775808
_INT64_MAX = 9223372036854775807
_UINT64_MAX = 18446744073709551615


@dataclass(frozen=True)
class TargetInfo:
    """Sizes, limits and conventions of a target architecture."""

    name: str
    size_byte: int
    size_char: int
    size_short: int
    size_int: int
    size_long: int
    size_float: int
    size_double: int
    size_pointer: int
    min_byte: int
    max_byte: int
    max_ubyte: int
    min_char: int
    max_char: int
    max_uchar: int
    min_short: int
    max_short: int
    max_ushort: int
    min_int: int
    max_int: int
    max_uint: int
    min_long: int
    max_long: int
    max_ulong: int
    unsigned_char: bool
    fend_asm: str
    fend_obj: str
    fend_archive: str
    fend_dll: str
    has_c99_array: bool
    ptrdiff_type: IntegerSize
    size_type: IntegerSize
    size_int8: IntegerSize
    size_int16: IntegerSize
    size_int32: IntegerSize
    size_int64: Optional[IntegerSize]
    max_immed: int
    min_immed: int


def _check_bits(bits: int) -> None:
    if bits not in (32, 64):
        raise ValueError(f"unsupported target width: {bits} bits")


def target_info(bits: int) -> TargetInfo:
    """The target description of 32-bit (i386) or 64-bit (x86_64) x86."""
    _check_bits(bits)
    is32 = bits == 32
    return TargetInfo(
        name="i386" if is32 else "x86_64",
        size_byte=1,
        size_char=1,
        size_short=2,
        size_int=4,
        size_long=bits // 8,
        size_float=4,
        size_double=8,
        size_pointer=bits // 8,
        min_byte=_INT8_MIN,
        max_byte=_INT8_MAX,
        max_ubyte=_UINT8_MAX,
        min_char=_INT8_MIN,
        max_char=_INT8_MAX,
        max_uchar=_UINT8_MAX,
        min_short=_INT16_MIN,
        max_short=_INT16_MAX,
        max_ushort=_UINT16_MAX,
        min_int=_INT32_MIN,
        max_int=_INT32_MAX,
        max_uint=_UINT32_MAX,
        min_long=_INT32_MIN if is32 else _INT64_MIN,
        max_long=_INT32_MAX if is32 else _INT64_MAX,
        max_ulong=_UINT32_MAX if is32 else _UINT64_MAX,
        unsigned_char=False,
        fend_asm="asm",
        fend_obj="o",
        fend_archive="a",
        fend_dll="so",
        has_c99_array=True,
        ptrdiff_type=IntegerSize.INT if is32 else IntegerSize.LONG,
        size_type=IntegerSize.INT if is32 else IntegerSize.LONG,
        size_int8=IntegerSize.BYTE,
        size_int16=IntegerSize.SHORT,
        size_int32=IntegerSize.INT,
        size_int64=None if is32 else IntegerSize.LONG,
        max_immed=_INT32_MAX if is32 else _INT64_MAX,
        min_immed=_INT32_MIN if is32 else _INT64_MIN,
    )


def irs_to_size(irs: IrSize, bits: int) -> int:
    """Size in bytes of an operand of size `irs`."""
    info = target_info(bits)
    sizes = {
        IrSize.BYTE: info.size_byte,
        IrSize.CHAR: info.size_char,
        IrSize.SHORT: info.size_short,
        IrSize.INT: info.size_int,
        IrSize.LONG: info.size_long,
        IrSize.PTR: info.size_pointer,
    }
    try:
        return sizes[IrSize(irs)]
    except KeyError:
        raise ValueError(f"operand size '{IrSize(irs).name.lower()}' has no byte size") from None


def target_get_umax(irs: IrSize, bits: int) -> int:
    """The largest unsigned value an operand of size `irs` can hold."""
    info = target_info(bits)
    maxima = {
        IrSize.BYTE: info.max_ubyte,
        IrSize.CHAR: info.max_uchar,
        IrSize.SHORT: info.max_ushort,
        IrSize.INT: info.max_uint,
        IrSize.LONG: info.max_ulong,
        IrSize.PTR: info.max_ulong,
    }
    try:
        return maxima[IrSize(irs)]
    except KeyError:
        raise ValueError(f"operand size '{IrSize(irs).name.lower()}' has no maximum") from None


@dataclass
class MachineOption:
    """A target-specific option set with -m."""

    name: str
    description: str
    value: Union[bool, int, str] = False

    @property
    def enabled(self) -> bool:
        """Boolean options are on when true; other kinds are on once present."""
        if isinstance(self.value, bool):
            return self.value
        return True


def default_machine_options() -> list[MachineOption]:
    """The machine options of the x86 target with their defaults."""
    return [
        MachineOption(
            "stack-check",
            "Perform stack alignment checking on every function entry",
            False,
        ),
    ]


def ld_abi(bits: int) -> str:
    """The emulation flag passed to the linker."""
    _check_bits(bits)
    return "-melf_i386" if bits == 32 else "-melf_x86_64"


def assemble(source, output, bits: int = 64, nasm: str = "nasm", verbose: bool = False) -> int:
    """Assemble `source` into the object file `output`; return the assembler's exit code."""
    _check_bits(bits)
    argv = [nasm, "-f", "elf32" if bits == 32 else "elf64", "-o", str(output), str(source)]
    if verbose:
        print(" ".join(argv), file=sys.stderr)
    try:
        proc = subprocess.run(argv, check=False)
    except OSError as exc:
        print(f"failed to invoke {nasm}: {exc.strerror or exc}", file=sys.stderr)
        return 1
    if proc.returncode < 0:
        raise RuntimeError(f"failed to wait for {nasm}")
    return proc.returncode