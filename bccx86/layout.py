"""Stack layout, operand size keywords and static data for the x86 back end."""

from __future__ import annotations

from typing import Optional

from .ir import IrSize
from .regs import register_set
from .types import IntegerSize, Scope, Value, ValueBaseType, ValueType

_UINTMAX = 1 << 64


def nasm_size(size: IrSize, bits: int) -> str:
    """The NASM size keyword for operands of `size`."""
    size = IrSize(size)
    if size in (IrSize.BYTE, IrSize.CHAR):
        return "byte"
    if size is IrSize.SHORT:
        return "word"
    if bits == 64 and size in (IrSize.PTR, IrSize.LONG):
        return "qword"
    if size in (IrSize.PTR, IrSize.INT):
        return "dword"
    raise ValueError(f"unsupported operand size '{size.name.lower()}'")


def x86_sizeof_value(vt: ValueType, bits: int) -> int:
    """Stack space a variable of type `vt` takes.

    Pointers without a constant array size reserve two machine words:
    one for the address and one for the length.
    """
    if vt.type is ValueBaseType.POINTER and not vt.has_const_size:
        return register_set(bits).regsize * 2
    return vt.size(bits)


def sizeof_scope(scope: Scope, bits: int) -> int:
    """Stack space needed by `scope`: its own variables plus its largest child."""
    own = sum(x86_sizeof_value(var.type, bits) for var in scope.vars)
    largest_child = max((sizeof_scope(child, bits) for child in scope.children), default=0)
    return own + largest_child


def assign_scope(scope: Scope, bits: int, addr: int = 0) -> int:
    """Give every variable in `scope` and its children a frame offset.

    Offsets grow from `addr`; each variable's address is the offset just past
    its storage. Returns the offset after the last variable.
    """
    for var in scope.vars:
        addr += x86_sizeof_value(var.type, bits)
        var.addr = addr
    for child in scope.children:
        addr = assign_scope(child, bits, addr)
    return addr


def align_stack_size(n: int) -> int:
    """Round `n` up to a multiple of 16."""
    return (n & ~15) + 16 if n & 15 else n


def _as_unsigned(v: int) -> int:
    return v % _UINTMAX


def _as_signed(v: int) -> int:
    v %= _UINTMAX
    return v - _UINTMAX if v >= _UINTMAX // 2 else v


def _int_directive(size: IntegerSize, bits: int) -> str:
    size = IntegerSize(size)
    if size in (IntegerSize.BYTE, IntegerSize.CHAR):
        return "db"
    if size is IntegerSize.SHORT:
        return "dw"
    if size is IntegerSize.LONG and bits == 64:
        return "dq"
    if size in (IntegerSize.INT, IntegerSize.LONG):
        return "dd"
    raise ValueError("invalid IR integer size")


def _int_of(val: Value) -> int:
    if not isinstance(val.value, int):
        raise ValueError("value is not an integer")
    return val.value


def global_init_lines(vt: ValueType, val: Optional[Value], bits: int) -> list[str]:
    """The data directives that initialize a global of type `vt` with `val`.

    A `val` of None gives a zero-filled initializer.
    """
    kind = vt.type
    if kind is ValueBaseType.INT:
        directive = _int_directive(vt.int_size, bits)
        if val is None:
            return [f"{directive} 0"]
        number = _int_of(val)
        number = _as_unsigned(number) if vt.is_unsigned else _as_signed(number)
        return [f"{directive} {number}"]
    if kind is ValueBaseType.POINTER:
        if vt.array:
            if val is None:
                return [f"resb {vt.size(bits)}"]
            if not val.type.is_array():
                raise ValueError(f"val is not an array, val is {val.type.type.name.lower()}")
            if vt.base is None:
                raise ValueError("array has no element type")
            lines: list[str] = []
            for element in val.array:
                lines.extend(global_init_lines(vt.base, element, bits))
            return lines
        directive = "dd" if bits == 32 else "dq"
        if val is None:
            return [f"{directive} 0"]
        return [f"{directive} {_as_unsigned(_int_of(val))}"]
    if kind is ValueBaseType.BOOL:
        if val is None:
            return ["db 0"]
        return [f"db {1 if _int_of(val) else 0}"]
    raise ValueError(f"invalid variable type '{kind.name.lower()}'")