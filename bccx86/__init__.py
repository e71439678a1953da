"""NASM assembly generation for x86 and x86-64 from a small C compiler's IR."""

__version__ = "0.1.0"

__all__ = [
    "builtins",
    "gen",
    "ir",
    "layout",
    "optim",
    "regs",
    "strdb",
    "target",
    "types",
]