# bccx86

The x86 / x86-64 back end of a small C compiler. It takes a compilation unit
whose functions already carry intermediate-representation (IR) code and turns
it into NASM assembly for 32-bit (`elf32`) or 64-bit (`elf64`) targets.

## Modules

- `bccx86.types`: value types (`ValueType`, `make_int`, `make_pointer`,
  `make_array`), structures, compile-time `Value`s, `Variable`s, nested
  `Scope`s, `Function`s and the `CompilationUnit` that holds them.
- `bccx86.strdb`: `StringDb`, the pool of string literals stored back to back
  with a NUL after each; it becomes the `__strings` read-only section.
- `bccx86.ir`: IR node kinds (`IrNodeType`), operand sizes (`IrSize`),
  operands (`IrValue.reg`, `IrValue.uint`), doubly linked `IrNode` chains
  (`append`, `insert`, `remove`, `end`, iteration), `ir_chain` to link a list
  of nodes, and `vt_to_irs` mapping a value type to an operand size.
- `bccx86.regs`: `register_set(bits)` gives the register names for every
  operand size; an out-of-range register or unsupported size raises
  `RegisterError`.
- `bccx86.target`: `target_info(bits)` with sizes and limits of the integer
  types, `irs_to_size`, `target_get_umax`, the machine options
  (`default_machine_options`, currently only `stack-check`), `ld_abi` for the
  linker emulation flag, and `assemble`, which runs `nasm`.
- `bccx86.builtins`: `builtin_funcs(bits)` returns a `BuiltinTable` of the
  `__mul*`, `__div*` and `__mod*` helpers, `__check_sp` and
  `__builtin_return_address`; only requested ones are written out.
- `bccx86.optim`: `target_post_optim_ir` rewrites multiplications, divisions
  and modulo operations into calls to those helpers; `target_optim_ir` makes
  no changes.
- `bccx86.layout`: NASM size keywords, stack space of variables and scopes,
  frame offsets (`assign_scope`), 16-byte alignment (`align_stack_size`) and
  data directives for global variables (`global_init_lines`).
- `bccx86.gen`: `CodeGenerator` and the `generate_assembly` entry point.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

A unit with one function, `main`, that returns 42:

```python
from bccx86.gen import generate_assembly
from bccx86.ir import IrNode, IrNodeType, IrSize, ir_chain
from bccx86.types import CompilationUnit, Function, Scope

func = Function("main")
func.scope = Scope(func=func)
func.ir_code = ir_chain([
    IrNode(IrNodeType.PROLOGUE, func=func),
    IrNode(IrNodeType.LOAD, dest=0, value=42, size=IrSize.INT),
    IrNode(IrNodeType.IRET, reg=0, size=IrSize.INT),
    IrNode(IrNodeType.EPILOGUE, func=func),
])

asm = generate_assembly(CompilationUnit(funcs=[func]), bits=64, optim_level=1)
```

`optim_level` 1 clears registers with `xor` and folds a comparison into the
conditional jump that follows it; level 2 also folds variable lookups with the
read, write or increment that follows. With `stack_check=True` every function
first calls `__check_sp`, which prints a message and aborts when the stack is
misaligned.

Smaller building blocks:

```python
from bccx86.regs import register_set
from bccx86.builtins import builtin_funcs
from bccx86.layout import align_stack_size
from bccx86.target import target_info, ld_abi

register_set(64).mreg(0)     # "rax"

table = builtin_funcs(32)
table.request("__divsi32")   # mark the helper to be emitted
table.requested()            # helpers written at the end of the unit

align_stack_size(20)         # 32
target_info(32).size_long    # 4
ld_abi(64)                   # "-melf_x86_64"
```

`bccx86.target.assemble(source, output, bits, nasm, verbose)` runs `nasm`
with the matching output format and returns its exit status; `nasm` must be
installed and on the `PATH`.

## What it does not do

The package is a back end only. It has no C preprocessor, parser or IR
generator: the `CompilationUnit`, its functions and their IR chains must be
built by the caller. It does not link object files and has no command-line
program.