"""The intermediate representation: node kinds, operand sizes and linked node chains."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

from .types import ValueBaseType, ValueType


class IrNodeType(enum.Enum):
    """Kinds of IR nodes."""

    NOP = enum.auto()
    MOVE = enum.auto()
    LOAD = enum.auto()
    IADD = enum.auto()
    ISUB = enum.auto()
    IAND = enum.auto()
    IOR = enum.auto()
    IXOR = enum.auto()
    ILSL = enum.auto()
    ILSR = enum.auto()
    IASR = enum.auto()
    IMUL = enum.auto()
    IDIV = enum.auto()
    IMOD = enum.auto()
    UMUL = enum.auto()
    UDIV = enum.auto()
    UMOD = enum.auto()
    INEG = enum.auto()
    INOT = enum.auto()
    BNOT = enum.auto()
    RET = enum.auto()
    IRET = enum.auto()
    LOOKUP = enum.auto()
    BEGIN_SCOPE = enum.auto()
    END_SCOPE = enum.auto()
    READ = enum.auto()
    WRITE = enum.auto()
    PROLOGUE = enum.auto()
    EPILOGUE = enum.auto()
    IICAST = enum.auto()
    IFCALL = enum.auto()
    FPARAM = enum.auto()
    LSTR = enum.auto()
    ISTEQ = enum.auto()
    ISTNE = enum.auto()
    ISTGR = enum.auto()
    ISTGE = enum.auto()
    ISTLT = enum.auto()
    ISTLE = enum.auto()
    USTGR = enum.auto()
    USTGE = enum.auto()
    USTLT = enum.auto()
    USTLE = enum.auto()
    JMP = enum.auto()
    JMPIF = enum.auto()
    JMPIFN = enum.auto()
    LABEL = enum.auto()
    ALLOCA = enum.auto()
    COPY = enum.auto()
    ARRAYLEN = enum.auto()
    GLOOKUP = enum.auto()
    FCALL = enum.auto()
    IRCALL = enum.auto()
    RCALL = enum.auto()
    FLOOKUP = enum.auto()
    SRET = enum.auto()


class IrSize(enum.IntEnum):
    """Operand sizes, ordered from smallest to largest integer."""

    BYTE = 0
    CHAR = 1
    SHORT = 2
    INT = 3
    LONG = 4
    PTR = 5
    VOID = 6
    STRUCT = 7


class IrValueType(enum.Enum):
    """Kinds of IR operands."""

    REG = enum.auto()
    UINT = enum.auto()


@dataclass(frozen=True)
class IrValue:
    """An operand: either a register number or an unsigned constant."""

    type: IrValueType
    value: int

    @classmethod
    def reg(cls, r: int) -> "IrValue":
        """A register operand."""
        return cls(IrValueType.REG, r)

    @classmethod
    def uint(cls, v: int) -> "IrValue":
        """An unsigned constant operand."""
        return cls(IrValueType.UINT, v)

    @property
    def is_reg(self) -> bool:
        return self.type is IrValueType.REG


@dataclass(eq=False)
class IrNode:
    """One IR instruction, linked to its neighbours.

    Which fields matter depends on `type`:
    MOVE/READ/WRITE/IICAST/COPY use dest and src; LOAD uses dest and value;
    binary operations use dest, a and b; unary ones, returns, FPARAM, LSTR,
    LOOKUP and conditional jumps use reg; calls use name, dest and params;
    JMP, JMPIF, JMPIFN and LABEL use label.
    """

    type: IrNodeType
    dest: int = 0
    src: int = 0
    reg: int = 0
    size: Any = IrSize.INT
    value: int = 0
    a: Optional[IrValue] = None
    b: Optional[IrValue] = None
    sign_extend: bool = False
    is_volatile: bool = False
    ds: IrSize = IrSize.INT
    ss: IrSize = IrSize.INT
    name: Optional[str] = None
    label: Optional[str] = None
    params: list["IrNode"] = field(default_factory=list)
    idx: int = 0
    var_idx: int = 0
    length: int = 0
    variadic: bool = False
    ptr: int = 0
    addr: Optional["IrNode"] = field(default=None, repr=False)
    var: Any = field(default=None, repr=False)
    scope: Any = field(default=None, repr=False)
    func: Any = field(default=None, repr=False)
    prev: Optional["IrNode"] = field(default=None, repr=False)
    next: Optional["IrNode"] = field(default=None, repr=False)

    def __iter__(self) -> Iterator["IrNode"]:
        node: Optional[IrNode] = self
        while node is not None:
            yield node
            node = node.next

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def end(self) -> "IrNode":
        """The last node of the chain starting here."""
        node = self
        while node.next is not None:
            node = node.next
        return node

    def append(self, other: Optional["IrNode"]) -> "IrNode":
        """Attach the chain `other` to the end of this chain; return self."""
        if other is None:
            return self
        last = self.end()
        last.next = other
        other.prev = last
        return self

    def insert(self, other: Optional["IrNode"]) -> "IrNode":
        """Insert the chain `other` directly after this node; return self."""
        if other is None:
            return self
        follower = self.next
        other_end = other.end()
        self.next = other
        other.prev = self
        other_end.next = follower
        if follower is not None:
            follower.prev = other_end
        return self

    def remove(self) -> None:
        """Unlink this node from its neighbours."""
        if self.prev is not None:
            self.prev.next = self.next
        if self.next is not None:
            self.next.prev = self.prev
        self.prev = None
        self.next = None

    def is_(self, *types: IrNodeType) -> bool:
        """True if this node is of one of `types`."""
        return self.type in types


def ir_chain(nodes: Iterable[IrNode]) -> Optional[IrNode]:
    """Link `nodes` in order and return the first one, or None if there are none."""
    head: Optional[IrNode] = None
    for node in nodes:
        if head is None:
            head = node
        else:
            head.append(node)
    return head


_INT_TO_IRS = {
    "BYTE": IrSize.BYTE,
    "CHAR": IrSize.CHAR,
    "SHORT": IrSize.SHORT,
    "INT": IrSize.INT,
    "LONG": IrSize.LONG,
}


def vt_to_irs(vt: ValueType) -> IrSize:
    """The IR operand size for values of type `vt`."""
    kind = vt.type
    if kind is ValueBaseType.INT:
        return _INT_TO_IRS[vt.int_size.name]
    if kind is ValueBaseType.BOOL:
        return IrSize.BYTE
    if kind is ValueBaseType.ENUM:
        return IrSize.INT
    if kind is ValueBaseType.POINTER:
        return IrSize.PTR
    if kind is ValueBaseType.VOID:
        return IrSize.VOID
    if kind in (ValueBaseType.STRUCT, ValueBaseType.UNION):
        return IrSize.STRUCT
    raise ValueError(f"type '{kind.name.lower()}' has no IR size")