"""NASM code generation for the x86 back end."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from .builtins import BuiltinTable, builtin_funcs
from .ir import IrNode, IrNodeType, IrSize, IrValue, IrValueType
from .layout import align_stack_size, assign_scope, global_init_lines, nasm_size, sizeof_scope
from .regs import register_set
from .strdb import StringDb
from .target import default_machine_options, irs_to_size
from .types import Attribute, CompilationUnit, Function

_UINTMAX = 1 << 64

_BINARY_INSTR = {
    IrNodeType.IAND: "and",
    IrNodeType.IOR: "or",
    IrNodeType.IXOR: "xor",
    IrNodeType.ILSL: "shl",
    IrNodeType.ILSR: "shr",
    IrNodeType.IASR: "sar",
}

_UNARY_INSTR = {IrNodeType.INOT: "not", IrNodeType.INEG: "neg"}

_ARITH_INSTR = {
    IrNodeType.IDIV: "sdiv",
    IrNodeType.UDIV: "udiv",
    IrNodeType.IMOD: "smod",
    IrNodeType.UMOD: "umod",
    IrNodeType.IMUL: "smul",
    IrNodeType.UMUL: "umul",
}

# set instruction, jump instruction, negated comparison
_COMPARISONS = {
    IrNodeType.ISTEQ: ("sete", "je", IrNodeType.ISTNE),
    IrNodeType.ISTNE: ("setne", "jne", IrNodeType.ISTEQ),
    IrNodeType.ISTGR: ("setg", "jg", IrNodeType.ISTLE),
    IrNodeType.ISTGE: ("setge", "jge", IrNodeType.ISTLT),
    IrNodeType.ISTLT: ("setl", "jl", IrNodeType.ISTGE),
    IrNodeType.ISTLE: ("setle", "jle", IrNodeType.ISTGR),
    IrNodeType.USTGR: ("seta", "ja", IrNodeType.USTLE),
    IrNodeType.USTGE: ("setae", "jae", IrNodeType.USTLT),
    IrNodeType.USTLT: ("setb", "jb", IrNodeType.USTGE),
    IrNodeType.USTLE: ("setbe", "jbe", IrNodeType.USTGR),
}


def _as_signed(v: int) -> int:
    v %= _UINTMAX
    return v - _UINTMAX if v >= _UINTMAX // 2 else v


def _is_printable(byte: int) -> bool:
    return 0x20 <= byte < 0x7F


@dataclass
class _StackAllocEntry:
    is_const: bool
    sz: int  # if not constant, the size lives at [bp - sz]


class CodeGenerator:
    """Turns the IR of a compilation unit into NASM assembly."""

    def __init__(
        self,
        unit: CompilationUnit,
        bits: int = 64,
        optim_level: int = 0,
        stack_check: bool = False,
    ) -> None:
        self.unit = unit
        self.bits = bits
        self.optim_level = optim_level
        self.regs = register_set(bits)
        self.builtins: BuiltinTable = builtin_funcs(bits)
        self.machine_options = default_machine_options()
        for option in self.machine_options:
            if option.name == "stack-check":
                option.value = stack_check
        self.strings = StringDb()
        self.lines: list[str] = []
        self._partial = ""
        self._cur_func: Optional[Function] = None
        self._esp = 0
        self._unresolved: list[str] = []
        self._defined: list[str] = []
        self._stack_alloc: list[list[_StackAllocEntry]] = []
        self._stack_cur: list[_StackAllocEntry] = []
        self._handlers: dict[IrNodeType, Callable[[IrNode], Optional[IrNode]]] = {
            IrNodeType.NOP: self._nop,
            IrNodeType.MOVE: self._move,
            IrNodeType.LOAD: self._load,
            IrNodeType.IADD: self._add_sub,
            IrNodeType.ISUB: self._add_sub,
            IrNodeType.BEGIN_SCOPE: self._begin_scope,
            IrNodeType.END_SCOPE: self._end_scope,
            IrNodeType.READ: self._read,
            IrNodeType.WRITE: self._write,
            IrNodeType.PROLOGUE: self._prologue,
            IrNodeType.EPILOGUE: self._epilogue,
            IrNodeType.IRET: self._ret,
            IrNodeType.RET: self._ret,
            IrNodeType.IICAST: self._iicast,
            IrNodeType.IFCALL: self._call,
            IrNodeType.FCALL: self._call,
            IrNodeType.LOOKUP: self._lookup,
            IrNodeType.FPARAM: self._fparam,
            IrNodeType.LSTR: self._lstr,
            IrNodeType.LABEL: self._label,
            IrNodeType.JMP: self._jmp,
            IrNodeType.JMPIF: self._cond_jmp,
            IrNodeType.JMPIFN: self._cond_jmp,
            IrNodeType.ALLOCA: self._alloca,
            IrNodeType.ARRAYLEN: self._arraylen,
            IrNodeType.COPY: self._copy,
            IrNodeType.FLOOKUP: self._flookup,
            IrNodeType.GLOOKUP: self._glookup,
            IrNodeType.BNOT: self._bnot,
            IrNodeType.IRCALL: self._rcall,
            IrNodeType.RCALL: self._rcall,
            IrNodeType.SRET: self._sret,
        }
        for kind in _BINARY_INSTR:
            self._handlers[kind] = self._binary
        for kind in _UNARY_INSTR:
            self._handlers[kind] = self._unary
        for kind in _ARITH_INSTR:
            self._handlers[kind] = self._arith
        for kind in _COMPARISONS:
            self._handlers[kind] = self._compare

    # output

    def _emit(self, text: str = "") -> None:
        full = self._partial + text
        self._partial = ""
        self.lines.extend(full.split("\n"))

    def _emitraw(self, text: str) -> None:
        self._partial += text

    # public entry points

    def emit_unit(self) -> str:
        """Generate the assembly of the whole unit and return it."""
        self.lines = []
        self._partial = ""
        self._begin()
        for func in self.unit.funcs:
            if func.ir_code is not None:
                self.emit_function(func)
        self._end()
        return "\n".join(self.lines) + "\n"

    def emit_function(self, func: Function) -> None:
        """Generate the assembly of one function from its IR."""
        self._cur_func = func
        self._esp = 0
        self._emit_chain(func.ir_code)

    def emit_node(self, node: IrNode) -> Optional[IrNode]:
        """Generate the assembly of `node`; return the next node still to emit."""
        handler = self._handlers.get(node.type)
        if handler is None:
            raise ValueError(f"unsupported ir_node type '{node.type.name.lower()}'")
        return handler(node)

    # unit-level pieces

    def _emit_chain(self, node: Optional[IrNode]) -> None:
        while node is not None:
            node = self.emit_node(node)

    def _emit_externs(self) -> None:
        wide = self.bits == 64
        for kind in ("mul", "div", "mod"):
            for sign in ("u", "s"):
                for width in (8, 16, 32):
                    self._emit(f"extern __{kind}{sign}i{width}")
            if wide:
                self._emit(f"extern __{kind}ui64")
                self._emit(f"extern __{kind}si64")

    def _begin(self) -> None:
        self.strings = StringDb()
        self._unresolved = []
        self._defined = []
        self._emit("default rel")
        self._emit("section .text")
        self._emit_externs()
        for var in self.unit.vars:
            if var.attrs & Attribute.EXTERN:
                self._unresolved.append(var.name)
            else:
                self._defined.append(var.name)

    def _end(self) -> None:
        for name in self._unresolved:
            if name not in self._defined:
                self._emit(f"extern {name}")

        for func in self.builtins.requested():
            self._emit(f"{func.name}:\n{func.code}")

        data = self.strings.data()
        if data:
            self._emit("\nsection .rodata\n__strings:")
            i = 0
            while i < len(data):
                if data[i] == 0:
                    self._emit("db 0")
                    i += 1
                    continue
                parts: list[str] = []
                while data[i]:
                    if _is_printable(data[i]):
                        start = i
                        while _is_printable(data[i]):
                            i += 1
                        parts.append('"' + data[start:i].decode("ascii") + '"')
                    else:
                        parts.append(str(data[i]))
                        i += 1
                self._emit("db " + "".join(p + ", " for p in parts) + "0")
                i += 1

        self._unresolved = []
        self._defined = []

        if self.unit.vars:
            self._emit("section .data")
            for var in self.unit.vars:
                if var.attrs & Attribute.EXTERN:
                    continue
                if not var.attrs & Attribute.STATIC:
                    self._emit(f"global {var.name}")
                self._emit(f"{var.name}:")
                for line in global_init_lines(var.type, var.const_init, self.bits):
                    self._emit(line)

    # helpers

    def _irv(self, value: IrValue, size: IrSize) -> str:
        if value.type is IrValueType.REG:
            return self.regs.reg_op(value.value, size)
        if value.type is IrValueType.UINT:
            return str(value.value)
        raise ValueError(f"invalid IR value type '{value.type}'")

    def _clear(self, reg: str) -> None:
        if self.optim_level < 1:
            self._emit(f"mov {reg}, 0")
        else:
            self._emit(f"xor {reg}, {reg}")

    def _has_mach_opt(self, name: str) -> bool:
        return any(opt.name == name and opt.enabled for opt in self.machine_options)

    def _add_unresolved(self, name: str) -> None:
        if name in self._defined or name in self._unresolved:
            return
        builtin = self.builtins.get(name)
        if builtin is not None:
            builtin.requested = True
            return
        self._unresolved.append(name)

    def _is_defined(self, name: str) -> bool:
        if any(f.name == name and f.scope is not None for f in self.unit.funcs):
            return True
        return self.builtins.get(name) is not None

    def _free_stack(self) -> None:
        if not self._stack_alloc:
            raise ValueError("end of scope without a matching beginning")
        entries = self._stack_cur
        self._stack_cur = self._stack_alloc.pop()
        rs = self.regs
        const_sz = 0
        for entry in entries:
            if entry.is_const:
                const_sz += entry.sz
            else:
                self._emit(f"add {rs.sp}, {nasm_size(IrSize.PTR, self.bits)} [{rs.bp} - {entry.sz}]")
        if const_sz:
            self._emit(f"add {rs.sp}, {const_sz}")

    def _call_padding(self, num_params: int) -> int:
        rs = self.regs
        if self.bits == 64:
            extra = max(0, num_params - len(rs.param_regs)) * rs.regsize
            padding = 16 - (self._esp + extra) % 16
        else:
            padding = 16 - (self._esp + num_params * rs.regsize) % 16
        return 0 if padding == 16 else padding

    def _push_params64(self, params: list[IrNode], dest: int) -> int:
        rs = self.regs
        nregs = len(rs.param_regs)
        for param in reversed(params[nregs:]):
            self._emit_chain(param)
            self._emit(f"push {rs.mreg(dest)}")
        in_regs = params[:nregs]
        for param in in_regs:
            self._emit_chain(param)
            self._emit(f"push {rs.mreg(dest)}")
        return len(in_regs)

    def _pop_param_regs(self, count: int) -> None:
        rs = self.regs
        for i in reversed(range(count)):
            self._emit(f"pop {rs.mreg(rs.param_regs[i])}")

    def _save_regs(self, count: int) -> None:
        for i in range(count):
            self._emit(f"push {self.regs.mreg(i)}")
            self._esp += self.regs.regsize

    def _restore_regs(self, count: int) -> None:
        for i in reversed(range(count)):
            self._emit(f"pop {self.regs.mreg(i)}")
            self._esp -= self.regs.regsize

    # node handlers

    def _nop(self, node: IrNode) -> Optional[IrNode]:
        self._emit("nop")
        return node.next

    def _move(self, node: IrNode) -> Optional[IrNode]:
        dest = self.regs.reg_op(node.dest, node.size)
        src = self.regs.reg_op(node.src, node.size)
        self._emit(f"mov {dest}, {src}")
        return node.next

    def _load(self, node: IrNode) -> Optional[IrNode]:
        dest = self.regs.reg_op(node.dest, node.size)
        if not node.value:
            self._clear(dest)
        else:
            self._emit(f"mov {dest}, {_as_signed(node.value)}")
        return node.next

    def _add_sub(self, node: IrNode) -> Optional[IrNode]:
        is_add = node.type is IrNodeType.IADD
        a = self._irv(node.a, node.size)
        b = self._irv(node.b, node.size)
        dest = self.regs.reg_op(node.dest, node.size)
        if node.a.is_reg and node.dest == node.a.value:
            if node.b.type is IrValueType.UINT and node.b.value == 1:
                self._emit(f"{'inc' if is_add else 'dec'} {dest}")
            else:
                self._emit(f"{'add' if is_add else 'sub'} {dest}, {b}")
        else:
            self._emit(f"lea {dest}, [{a} {'+' if is_add else '-'} {b}]")
        return node.next

    def _binary(self, node: IrNode) -> Optional[IrNode]:
        instr = _BINARY_INSTR[node.type]
        a = self._irv(node.a, node.size)
        b = self._irv(node.b, node.size)
        dest = self.regs.reg_op(node.dest, node.size)
        if not node.a.is_reg or node.dest != node.a.value:
            self._emit(f"mov {dest}, {a}")
        self._emit(f"{instr} {dest}, {b}")
        return node.next

    def _unary(self, node: IrNode) -> Optional[IrNode]:
        reg = self.regs.reg_op(node.reg, node.size)
        self._emit(f"{_UNARY_INSTR[node.type]} {reg}")
        return node.next

    def _arith(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        instr = _ARITH_INSTR[node.type]
        a = self._irv(node.a, IrSize.PTR)
        b = self._irv(node.b, IrSize.PTR)
        if node.dest != 0:
            self._emit(f"push {rs.ax}")
        name = f"__{instr[1:]}{instr[0]}i{irs_to_size(node.size, self.bits) * 8}"
        self._emit(f"push {b}")
        self._emit(f"push {a}")
        self._emit(f"call {name}")
        self._emit(f"add {rs.sp}, {rs.regsize * 2}")
        if node.dest != 0:
            self._emit(f"mov {rs.mreg(node.dest)}, {rs.ax}")
            self._emit(f"pop {rs.ax}")
        self.builtins.request(name)
        return node.next

    def _begin_scope(self, node: IrNode) -> Optional[IrNode]:
        self._emit("")
        self._stack_alloc.append(self._stack_cur)
        self._stack_cur = []
        return node.next

    def _end_scope(self, node: IrNode) -> Optional[IrNode]:
        self._emit("")
        self._free_stack()
        return node.next

    def _read(self, node: IrNode) -> Optional[IrNode]:
        src = self.regs.mreg(node.src)
        dest = self.regs.reg_op(node.dest, node.size)
        self._emit(f"mov {dest}, {nasm_size(node.size, self.bits)} [{src}]")
        return node.next

    def _write(self, node: IrNode) -> Optional[IrNode]:
        dest = self.regs.mreg(node.dest)
        src = self.regs.reg_op(node.src, node.size)
        self._emit(f"mov {nasm_size(node.size, self.bits)} [{dest}], {src}")
        return node.next

    def _prologue(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        func: Function = node.func if node.func is not None else self._cur_func
        if func is None:
            raise ValueError("prologue outside of a function")
        self._defined.append(func.name)
        if func.is_global():
            self._emit(f"global {func.name}")
        self._emit(f"{func.name}:")
        if self._has_mach_opt("stack-check"):
            self._add_unresolved("puts")
            self._add_unresolved("abort")
            self.builtins.request("__check_sp")
            self._emit("call __check_sp")
            self._defined.append("__check_sp")
        self._emit(f"push {rs.bp}")
        self._emit(f"mov {rs.bp}, {rs.sp}")
        self._esp = rs.regsize * 2
        addr = rs.regsize
        if self.bits == 64:
            for i in range(min(len(func.params), len(rs.param_regs))):
                self._emit(f"push {rs.mreg(rs.param_regs[i])}")
                self._esp += rs.regsize
                addr += rs.regsize
        size = align_stack_size(sizeof_scope(func.scope, self.bits)) if func.scope is not None else 0
        if size:
            self._emit(f"sub {rs.sp}, {size}")
        addr -= rs.regsize
        if func.scope is not None:
            assign_scope(func.scope, self.bits, addr)
        self._esp += size
        self._stack_cur = []
        return node.next

    def _epilogue(self, node: IrNode) -> Optional[IrNode]:
        func = node.func if node.func is not None else self._cur_func
        before = node.prev.prev if node.prev is not None else None
        if func is not None and func.name == "main" and before is not None and before.type is not IrNodeType.IRET:
            self._clear(self.regs.ax)
        self._emit(".ret:")
        self._emit("leave")
        self._emit("ret\n\n")
        return node.next

    def _ret(self, node: IrNode) -> Optional[IrNode]:
        if node.type is IrNodeType.IRET and node.reg != 0:
            reg = self.regs.reg_op(node.reg, node.size)
            ax = self.regs.reg_op(0, node.size)
            self._emit(f"mov {ax}, {reg}")
        self._emit("jmp .ret")
        return node.next

    def _iicast(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        ds, ss = IrSize(node.ds), IrSize(node.ss)
        if ds < ss:
            if node.dest != node.src:
                self._emit(f"mov {rs.reg_op(node.dest, ds)}, {rs.reg_op(node.src, ds)}")
            else:
                mask = 0
                if ds in (IrSize.BYTE, IrSize.CHAR):
                    mask = 0xFF
                elif ds is IrSize.SHORT:
                    mask = 0xFFFF
                elif ds is IrSize.INT and self.bits == 64:
                    reg = rs.reg32(node.dest)
                    self._emit(f"mov {reg}, {reg}")
                if mask:
                    self._emit(f"and {rs.mreg(node.dest)}, 0x{mask:x}")
        elif ds > ss:
            if ds not in (IrSize.LONG, IrSize.PTR):
                dest = rs.reg_op(node.dest, ds)
                src = rs.reg_op(node.src, ss)
                self._emit(f"{'movsx' if node.sign_extend else 'movzx'} {dest}, {src}")
        elif node.dest != node.src:
            self._emit(f"mov {rs.reg_op(node.dest, ds)}, {rs.reg_op(node.src, ds)}")
        return node.next

    def _call(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        params = node.params
        num = len(params)
        self._save_regs(node.dest)
        padding = self._call_padding(num)
        if padding:
            self._emit(f"sub {rs.sp}, {padding}")
        if self.bits == 64:
            count = self._push_params64(params, node.dest)
            self._pop_param_regs(count)
            callee = self.unit.get_func(node.name)
            if callee is not None and callee.variadic:
                self._clear(rs.ax)
            if self._is_defined(node.name):
                self._emit(f"call {node.name}")
            else:
                self._emit(f"call [rel {node.name} wrt ..got]")
            add_rsp = padding + max(0, num - len(rs.param_regs)) * rs.regsize
            if add_rsp:
                self._emit(f"add {rs.sp}, {add_rsp}")
        else:
            for param in reversed(params):
                self._emit_chain(param)
                self._emit(f"push {rs.mreg(node.dest)}")
            self._emit(f"call {node.name}")
            self._emit(f"add {rs.sp}, {padding + rs.regsize * num}")
        if not self._is_defined(node.name):
            self._add_unresolved(node.name)
        if node.dest != 0 and node.type is not IrNodeType.FCALL:
            self._emit(f"mov {rs.mreg(node.dest)}, {rs.ax}")
        self._restore_regs(node.dest)
        return node.next

    def _lookup_fused(self, node: IrNode, idx: int) -> Optional[IrNode]:
        """Fold a lookup with the memory access that follows; None if it cannot be folded."""
        rs = self.regs
        frame = f"[{rs.bp} - {idx}]"
        nxt = node.next
        if nxt is not None and nxt.type is IrNodeType.READ and nxt.src == node.reg and not nxt.is_volatile:
            read = nxt
            inc = read.next
            if inc is not None and inc.type in (IrNodeType.IADD, IrNodeType.ISUB) and inc.dest == read.dest:
                if not inc.a.is_reg or inc.a.value != inc.dest:
                    return None
                write = inc.next
                if not (
                    write is not None
                    and write.type is IrNodeType.WRITE
                    and not write.is_volatile
                    and write.src == inc.dest
                    and write.dest == node.reg
                ):
                    return None
                is_add = inc.type is IrNodeType.IADD
                size = nasm_size(read.size, self.bits)
                if inc.b.type is IrValueType.UINT:
                    if inc.b.value == 1:
                        self._emit(f"{'inc' if is_add else 'dec'} {size} {frame}")
                    else:
                        self._emit(f"{'add' if is_add else 'sub'} {size} {frame}, {inc.b.value}")
                elif inc.b.type is IrValueType.REG:
                    reg = rs.reg_op(inc.b.value, write.size)
                    self._emit(f"{'add' if is_add else 'sub'} {size} {frame}, {reg}")
                else:
                    return None
                return write.next or _END
            dest = rs.reg_op(read.dest, read.size)
            self._emit(f"mov {dest}, {nasm_size(read.size, self.bits)} {frame}")
            return read.next or _END
        if nxt is not None and nxt.type is IrNodeType.WRITE and nxt.dest == node.reg:
            src = rs.reg_op(nxt.src, nxt.size)
            self._emit(f"mov {nasm_size(nxt.size, self.bits)} {frame}, {src}")
            return nxt.next or _END
        return None

    def _lookup(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        idx = node.scope.vars[node.var_idx].addr
        if self.bits == 64:
            nparams = len(self._cur_func.params) if self._cur_func is not None else 0
            idx += min(len(rs.param_regs), nparams) * rs.regsize
        if self.optim_level >= 2:
            following = self._lookup_fused(node, idx)
            if following is not None:
                return None if following is _END else following
        self._emit(f"lea {rs.mreg(node.reg)}, [{rs.bp} - {idx}]")
        return node.next

    def _fparam(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        reg = rs.mreg(node.reg)
        if self.bits == 64:
            nregs = len(rs.param_regs)
            if node.reg < nregs:
                self._emit(f"lea {reg}, [{rs.bp} - {rs.regsize * (node.idx + 1)}]")
            else:
                self._emit(f"lea {reg}, [{rs.bp} + {rs.regsize * (node.idx + 2 - nregs)}]")
        else:
            self._emit(f"lea {reg}, [{rs.bp} + {rs.regsize * (node.idx + 2)}]")
        return node.next

    def _lstr(self, node: IrNode) -> Optional[IrNode]:
        entry = self.strings.add(node.name)
        reg = self.regs.mreg(node.reg)
        if self.bits == 64:
            self._emit(f"lea {reg}, [rel __strings + {entry.idx}]")
        else:
            self._emit(f"lea {reg}, [__strings + {entry.idx}]")
        return node.next

    def _compare(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        set_instr, jmp_instr, negation = _COMPARISONS[node.type]
        a = self._irv(node.a, node.size)
        b = self._irv(node.b, node.size)
        dest = rs.reg_op(node.dest, node.size)
        self._emit(f"cmp {a}, {b}")
        nxt = node.next
        if (
            self.optim_level >= 1
            and nxt is not None
            and nxt.type in (IrNodeType.JMPIF, IrNodeType.JMPIFN)
            and node.dest == nxt.reg
        ):
            instr = jmp_instr if nxt.type is IrNodeType.JMPIF else _COMPARISONS[negation][1]
            self._emit(f"{instr} {nxt.label}")
            return nxt.next
        self._emit(f"{set_instr} {rs.reg8(node.dest)}")
        if node.size > IrSize.CHAR:
            self._emit(f"movzx {dest}, {rs.reg8(node.dest)}")
        return node.next

    def _label(self, node: IrNode) -> Optional[IrNode]:
        self._emit(f"{node.label}:")
        return node.next

    def _jmp(self, node: IrNode) -> Optional[IrNode]:
        self._emit(f"jmp {node.label}")
        return node.next

    def _cond_jmp(self, node: IrNode) -> Optional[IrNode]:
        instr = "jnz" if node.type is IrNodeType.JMPIF else "jz"
        reg = self.regs.reg_op(node.reg, node.size)
        self._emit(f"test {reg}, {reg}")
        self._emit(f"{instr} {node.label}")
        return node.next

    def _alloca(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        amount: IrValue = node.size
        num = self._irv(amount, IrSize.PTR)
        dest = rs.reg_op(node.dest, IrSize.PTR)
        is_const = amount.type is IrValueType.UINT
        self._emit(f"sub {rs.sp}, {num}")
        if is_const:
            sz = amount.value
        else:
            sz = node.var.addr + rs.regsize
            self._emit(f"mov {nasm_size(IrSize.PTR, self.bits)} [{rs.bp} - {sz}], {num}")
        self._emit(f"mov {dest}, {rs.sp}")
        self._stack_cur.append(_StackAllocEntry(is_const, sz))
        return node.next

    def _arraylen(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        addr = node.scope.vars[node.var_idx].addr + rs.regsize
        self._emit(f"mov {rs.mreg(node.reg)}, {nasm_size(IrSize.PTR, self.bits)} [{rs.bp} - {addr}]")
        return node.next

    def _copy(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        if self.bits == 64:
            align = 16 - (self._esp & 15) if self._esp & 15 else 0
            if align:
                self._emit(f"sub {rs.sp}, {align}")
            self._emit(f"mov {rs.mreg(rs.param_regs[1])}, {rs.mreg(node.src)}")
            self._emit(f"mov {rs.mreg(rs.param_regs[0])}, {rs.mreg(node.dest)}")
            self._emit(f"mov {rs.mreg(rs.param_regs[2])}, {node.length}")
            self._emit("call [rel memcpy wrt ..got]")
            if align:
                self._emit(f"add {rs.sp}, {align}")
        else:
            self._esp += 12
            align = 16 - (self._esp & 15) if self._esp & 15 else 0
            if align:
                self._emit(f"sub {rs.sp}, {align}")
            self._emit(f"push {node.length}")
            self._emit(f"push {rs.mreg(node.src)}")
            self._emit(f"push {rs.mreg(node.dest)}")
            self._emit("call memcpy")
            self._emit(f"add esp, {12 + align}")
        self._add_unresolved("memcpy")
        return node.next

    def _flookup(self, node: IrNode) -> Optional[IrNode]:
        self._emit(f"mov {self.regs.mreg(node.reg)}, {node.name}")
        if not self._is_defined(node.name):
            self._add_unresolved(node.name)
        return node.next

    def _glookup(self, node: IrNode) -> Optional[IrNode]:
        self._emit(f"lea {self.regs.mreg(node.reg)}, [{node.name}]")
        return node.next

    def _bnot(self, node: IrNode) -> Optional[IrNode]:
        reg = self.regs.reg_op(node.reg, node.size)
        lower = self.regs.reg_op(node.reg, IrSize.BYTE)
        self._emit(f"test {reg}, {reg}")
        self._emit(f"setz {lower}")
        if node.size > IrSize.CHAR:
            self._emit(f"movzx {reg}, {lower}")
        return node.next

    def _rcall(self, node: IrNode) -> Optional[IrNode]:
        rs = self.regs
        params = node.params
        num = len(params)
        self._emit(f"push {rs.bx}")
        self._esp += rs.regsize
        self._save_regs(node.dest)
        padding = self._call_padding(num)
        if padding:
            self._emit(f"sub {rs.sp}, {padding}")
        count = 0
        if self.bits == 64:
            count = self._push_params64(params, node.dest)
        else:
            for param in reversed(params):
                self._emit_chain(param)
                self._emit(f"push {rs.mreg(node.dest)}")
        self._emit_chain(node.addr)
        if self.bits == 64:
            self._emit(f"mov {rs.bx}, {rs.mreg(node.dest)}")
            self._pop_param_regs(count)
            if node.variadic:
                self._clear(rs.ax)
            self._emit(f"call {rs.bx}")
            add_rsp = padding + max(0, num - len(rs.param_regs)) * rs.regsize
            if add_rsp:
                self._emit(f"add {rs.sp}, {add_rsp}")
        else:
            self._emit(f"call {rs.mreg(node.dest)}")
            if padding and num:
                self._emit(f"add {rs.sp}, {padding + rs.regsize * num}")
        if node.dest != 0:
            self._emit(f"mov {rs.mreg(node.dest)}, {rs.ax}")
        self._restore_regs(node.dest)
        self._emit(f"pop {rs.bx}")
        self._esp -= rs.regsize
        return node.next

    def _sret(self, node: IrNode) -> Optional[IrNode]:
        ptr = self.regs.mreg(node.ptr)
        if self.bits == 64 and node.length <= self.regs.regsize:
            self._emit(f"mov rax, qword [{ptr}]")
        return node.next


# marks a folded lookup that consumed the last node of a chain
_END = IrNode(IrNodeType.NOP)


def generate_assembly(
    unit: CompilationUnit,
    bits: int = 64,
    optim_level: int = 0,
    stack_check: bool = False,
) -> str:
    """NASM assembly for `unit` on a 32- or 64-bit x86 target."""
    return CodeGenerator(unit, bits, optim_level, stack_check).emit_unit()