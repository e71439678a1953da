"""Helper routines the x86 code generator can emit into the output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional


@dataclass
class BuiltinFunc:
    """A named assembly routine and whether the current unit needs it."""

    name: str
    code: str
    requested: bool = False


class BuiltinTable:
    """The builtin routines of one target, in emission order."""

    def __init__(self, funcs: list[BuiltinFunc]) -> None:
        self._funcs = list(funcs)
        self._by_name = {f.name: f for f in self._funcs}

    def __iter__(self) -> Iterator[BuiltinFunc]:
        return iter(self._funcs)

    def __len__(self) -> int:
        return len(self._funcs)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Optional[BuiltinFunc]:
        """The builtin called `name`, or None."""
        return self._by_name.get(name)

    def request(self, name: str) -> BuiltinFunc:
        """Mark the builtin called `name` as needed."""
        func = self._by_name.get(name)
        if func is None:
            raise KeyError(f"no builtin function '{name}'")
        func.requested = True
        return func

    def reset(self) -> None:
        """Unmark every builtin."""
        for func in self._funcs:
            func.requested = False

    def requested(self) -> list[BuiltinFunc]:
        """The requested builtins, in emission order."""
        return [f for f in self._funcs if f.requested]


def _join(lines: Iterable[str]) -> str:
    return "".join(line + "\n" for line in lines)


def _alignment_failures() -> list[tuple[str, int]]:
    return [("major", 4), ("minor", 16)]


def _check_sp(bits: int) -> str:
    """The stack alignment probe, which reports and aborts on misalignment."""
    if bits == 32:
        sp_low, sp = "sp", "esp"
        probe = [
            f"test {sp_low}, 7",
            "jnz .major",
            f"test {sp_low}, 8",
            "jz .minor",
        ]

        def report(label: str) -> list[str]:
            return [
                f"and {sp}, ~15",
                f"add {sp}, 8",
                f"push .{label}_err",
                "call puts",
                f"add {sp}, 4",
                "call abort",
            ]
    else:
        sp_low = "spl"
        probe = [
            f"test {sp_low}, 7",
            "jnz .major",
            f"test {sp_low}, 15",
            "jnz .minor",
        ]

        def got(symbol: str) -> str:
            return f"[rel {symbol} wrt ..got]"

        def report(label: str) -> list[str]:
            return [
                f"lea rdi, [rel .{label}_err]",
                f"call {got('puts')}",
                f"jmp {got('abort')}",
            ]

    lines = probe + ["ret"]
    for label, _ in _alignment_failures():
        lines.append(f".{label}:")
        lines.extend(report(label))
    lines.append("section .rodata")
    for label, align in _alignment_failures():
        lines.append(f'.{label}_err: db "Stack is not {align}-byte aligned.", 10, 0')
    lines.append("section .text")
    return _join(lines)


def _return_address(bits: int) -> str:
    """Loads the caller's return address from the current frame."""
    ax, bp, word = ("eax", "ebp", "dword") if bits == 32 else ("rax", "rbp", "qword")
    slot = bits // 8
    return _join([f"mov {ax}, {word} [{bp} + {slot}]", "ret"])


def _arith(kind: str, bits: int, sign: str, a: str, d: str, sz: str, instr: str, target_bits: int) -> BuiltinFunc:
    if target_bits == 32:
        dx, sp, first, second, ax = "edx", "esp", 8, 12, "eax"
    else:
        dx, sp, first, second, ax = "rdx", "rsp", 16, 24, "rax"
    lines = [f"push {dx}", f"mov {a}, {sz} [{sp} + {first}]"]
    if kind != "mul":
        lines.append(f"xor {d}, {d}")
    lines.append(f"{instr} {sz}[{sp} + {second}]")
    if kind == "mod":
        lines.append(f"mov {ax}, {dx}")
    lines += [f"pop {dx}", "ret"]
    return BuiltinFunc(f"__{kind}{sign}i{bits}", _join(lines))


def builtin_funcs(bits: int) -> BuiltinTable:
    """A fresh table of the builtin routines of a 32- or 64-bit target."""
    if bits not in (32, 64):
        raise ValueError(f"unsupported target width: {bits} bits")
    operands = [
        (8, "al", "dl", "byte"),
        (16, "ax", "dx", "word"),
        (32, "eax", "edx", "dword"),
    ]
    wide = (64, "rax", "rdx", "qword")
    instrs = {"div": ("idiv", "div"), "mod": ("idiv", "div"), "mul": ("imul", "mul")}

    funcs: list[BuiltinFunc] = []
    for kind, (signed_instr, unsigned_instr) in instrs.items():
        for sign, instr in (("s", signed_instr), ("u", unsigned_instr)):
            for width, a, d, sz in operands:
                funcs.append(_arith(kind, width, sign, a, d, sz, instr, bits))
        if bits == 64:
            width, a, d, sz = wide
            funcs.append(_arith(kind, width, "s", a, d, sz, signed_instr, bits))
            funcs.append(_arith(kind, width, "u", a, d, sz, unsigned_instr, bits))

    funcs.append(BuiltinFunc("__check_sp", _check_sp(bits)))
    funcs.append(BuiltinFunc("__builtin_return_address", _return_address(bits)))
    return BuiltinTable(funcs)