"""Target-specific IR rewrites for x86."""

from __future__ import annotations

from typing import Optional

from .ir import IrNode, IrNodeType, IrSize, IrValue, IrValueType
from .target import irs_to_size

_ARITH_CALLS = {
    IrNodeType.IMUL: ("mul", "s"),
    IrNodeType.UMUL: ("mul", "u"),
    IrNodeType.IDIV: ("div", "s"),
    IrNodeType.UDIV: ("div", "u"),
    IrNodeType.IMOD: ("mod", "s"),
    IrNodeType.UMOD: ("mod", "u"),
}


def value_to_node(val: IrValue, dest: int, size: IrSize) -> IrNode:
    """A node that puts the operand `val` into register `dest`."""
    if val.type is IrValueType.REG:
        return IrNode(IrNodeType.MOVE, dest=dest, src=val.value, size=size)
    if val.type is IrValueType.UINT:
        return IrNode(IrNodeType.LOAD, dest=dest, value=val.value, size=size)
    raise ValueError(f"invalid IR value type '{val.type}'")


def mul_to_func(head: Optional[IrNode], bits: int) -> bool:
    """Turn multiplications, divisions and modulos into calls to builtins."""
    if head is None:
        return False
    changed = False
    for node in head:
        call = _ARITH_CALLS.get(node.type)
        if call is None:
            continue
        kind, sign = call
        size = node.size
        name = f"__{kind}{sign}i{irs_to_size(size, bits) * 8}"
        params = [
            value_to_node(node.a, node.dest, size),
            value_to_node(node.b, node.dest, size),
        ]
        node.type = IrNodeType.IFCALL
        node.name = name
        node.params = params
        node.a = None
        node.b = None
        changed = True
    return changed


def target_optim_ir(head: Optional[IrNode]) -> bool:
    """Target-specific optimizations; x86 has none, so nothing changes."""
    return False


def target_post_optim_ir(head: Optional[IrNode], bits: int) -> bool:
    """Rewrites done after all other IR optimizations; True if anything changed."""
    changed = False
    while mul_to_func(head, bits):
        changed = True
    return changed