"""Value types, variables, scopes, functions and the compilation unit."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Union


class ValueBaseType(enum.Enum):
    """The basic kinds of value types."""

    INT = enum.auto()
    POINTER = enum.auto()
    VOID = enum.auto()
    AUTO = enum.auto()
    ENUM = enum.auto()
    STRUCT = enum.auto()
    UNION = enum.auto()
    FUNC = enum.auto()
    BOOL = enum.auto()


class IntegerSize(enum.IntEnum):
    """The specific integer sizes, ordered from smallest to largest."""

    BYTE = 0
    CHAR = 1
    SHORT = 2
    INT = 3
    LONG = 4


class Attribute(enum.IntFlag):
    """Attributes of variables and functions."""

    NONE = 0
    EXTERN = 0x0001
    STATIC = 0x0002
    NORETURN = 0x0004
    INLINE = 0x0008


def _integer_bytes(size: IntegerSize, bits: int) -> int:
    if size in (IntegerSize.BYTE, IntegerSize.CHAR):
        return 1
    if size is IntegerSize.SHORT:
        return 2
    if size is IntegerSize.INT:
        return 4
    return bits // 8


@dataclass
class StructEntry:
    """A member of a struct or union."""

    type: "ValueType"
    name: Optional[str]


@dataclass
class Structure:
    """A struct or union definition."""

    name: Optional[str]
    entries: list[StructEntry] = field(default_factory=list)
    is_definition: bool = True


@dataclass(eq=False)
class ValueType:
    """A data type as seen by the back end."""

    type: ValueBaseType
    is_const: bool = False
    is_volatile: bool = False
    int_size: IntegerSize = IntegerSize.INT
    is_unsigned: bool = False
    base: Optional["ValueType"] = None
    array: bool = False
    is_restrict: bool = False
    has_const_size: bool = False
    array_size: Optional[int] = None
    ret_val: Optional["ValueType"] = None
    params: list["ValueType"] = field(default_factory=list)
    variadic: bool = False
    func_name: Optional[str] = None
    structure: Optional[Structure] = None

    def is_array(self) -> bool:
        """True if this is an array type."""
        return self.type is ValueBaseType.POINTER and self.array

    def is_struct(self) -> bool:
        """True if this is a struct or union type."""
        return self.type in (ValueBaseType.STRUCT, ValueBaseType.UNION)

    def size(self, bits: int) -> int:
        """Size in bytes of a value of this type on a target of `bits` bits."""
        kind = self.type
        if kind is ValueBaseType.INT:
            return _integer_bytes(self.int_size, bits)
        if kind is ValueBaseType.BOOL:
            return 1
        if kind is ValueBaseType.ENUM:
            return 4
        if kind is ValueBaseType.POINTER:
            if not self.array:
                return bits // 8
            if not self.has_const_size or self.array_size is None:
                raise ValueError("size of a variable-length array is not known at compile time")
            if self.base is None:
                raise ValueError("array has no element type")
            return self.base.size(bits) * self.array_size
        if kind in (ValueBaseType.STRUCT, ValueBaseType.UNION):
            if self.structure is None:
                raise ValueError("incomplete struct or union type")
            sizes = [entry.type.size(bits) for entry in self.structure.entries]
            if kind is ValueBaseType.STRUCT:
                return sum(sizes)
            return max(sizes, default=0)
        raise ValueError(f"type '{kind.name.lower()}' has no size")


@dataclass
class Value:
    """A value known at compile time: an integer, a string or an array of values."""

    type: ValueType
    value: Union[int, str, list["Value"]] = 0

    @property
    def array(self) -> list["Value"]:
        if not isinstance(self.value, list):
            raise TypeError("value is not an array")
        return self.value


@dataclass(eq=False)
class Variable:
    """A variable declared in a scope or at file level."""

    type: ValueType
    name: str
    init: Any = None
    addr: int = 0
    attrs: Attribute = Attribute.NONE
    const_init: Optional[Value] = None

    @property
    def has_const_value(self) -> bool:
        return self.const_init is not None


@dataclass(eq=False)
class Scope:
    """A block scope holding variables and nested scopes."""

    parent: Optional["Scope"] = None
    func: Optional["Function"] = None
    children: list["Scope"] = field(default_factory=list)
    vars: list[Variable] = field(default_factory=list)
    body: list[Any] = field(default_factory=list)

    def add_var(self, var: Variable) -> int:
        """Declare `var` in this scope and return its index."""
        if any(existing.name == var.name for existing in self.vars):
            raise ValueError(f"redefinition of '{var.name}'")
        self.vars.append(var)
        return len(self.vars) - 1

    def find_var(self, name: str) -> Optional[Variable]:
        """Look `name` up in this scope and its enclosing scopes."""
        scope: Optional[Scope] = self
        while scope is not None:
            for var in scope.vars:
                if var.name == name:
                    return var
            scope = scope.parent
        return None

    def child(self) -> "Scope":
        """Create a nested scope belonging to the same function."""
        sub = Scope(parent=self, func=self.func)
        self.children.append(sub)
        return sub


@dataclass(eq=False)
class Function:
    """A function declaration or definition."""

    name: str
    type: Optional[ValueType] = None
    params: list[Variable] = field(default_factory=list)
    scope: Optional[Scope] = None
    ir_code: Any = None
    variadic: bool = False
    attrs: Attribute = Attribute.NONE

    def is_global(self) -> bool:
        """True if the function is visible outside its unit."""
        return not (self.attrs & Attribute.STATIC)


@dataclass
class CompilationUnit:
    """Everything declared in one translation unit."""

    funcs: list[Function] = field(default_factory=list)
    vars: list[Variable] = field(default_factory=list)
    aliases: list[Any] = field(default_factory=list)
    enums: list[Any] = field(default_factory=list)
    constants: list[Any] = field(default_factory=list)
    structs: list[Structure] = field(default_factory=list)
    unions: list[Structure] = field(default_factory=list)

    def get_func(self, name: str) -> Optional[Function]:
        """Return the first function called `name`, or None."""
        return next((f for f in self.funcs if f.name == name), None)


def make_int(size: IntegerSize, is_unsigned: bool) -> ValueType:
    """Create an integer type."""
    return ValueType(ValueBaseType.INT, int_size=size, is_unsigned=is_unsigned)


def make_pointer(base: ValueType) -> ValueType:
    """Create a pointer to `base`."""
    return ValueType(ValueBaseType.POINTER, base=base)


def make_array(base: ValueType, size: Optional[int]) -> ValueType:
    """Create an array of `base`; a size of None makes a variable-length array."""
    return ValueType(
        ValueBaseType.POINTER,
        base=base,
        array=True,
        has_const_size=size is not None,
        array_size=size,
    )