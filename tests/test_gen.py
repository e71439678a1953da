import pytest

from bccx86.gen import CodeGenerator, generate_assembly
from bccx86.ir import IrNode, IrNodeType, IrSize, IrValue, ir_chain
from bccx86.layout import align_stack_size, nasm_size, sizeof_scope
from bccx86.regs import RegisterError, register_set
from bccx86.types import (
    Attribute,
    CompilationUnit,
    Function,
    IntegerSize,
    Scope,
    Value,
    Variable,
    make_int,
)


def _int():
    return make_int(IntegerSize.INT, False)


def _function(name, nodes, scope=None, **kwargs):
    scope = scope if scope is not None else Scope()
    func = Function(name, type=_int(), scope=scope, **kwargs)
    scope.func = func
    for node in nodes:
        if node.type in (IrNodeType.PROLOGUE, IrNodeType.EPILOGUE):
            node.func = func
    func.ir_code = ir_chain(nodes)
    return func


def test_header_and_externs_depend_on_width():
    lines64 = generate_assembly(CompilationUnit(), 64).splitlines()
    lines32 = generate_assembly(CompilationUnit(), 32).splitlines()
    assert lines64[:2] == ["default rel", "section .text"]
    assert "extern __mului64" in lines64
    assert "extern __mului64" not in lines32
    assert "extern __modsi32" in lines32


def test_nop_returns_next_node():
    gen = CodeGenerator(CompilationUnit(), 64)
    head = ir_chain([IrNode(IrNodeType.NOP), IrNode(IrNodeType.NOP)])
    assert gen.emit_node(head) is head.next
    assert gen.lines == ["nop"]


@pytest.mark.parametrize("bits", [32, 64])
def test_load_zero_depends_on_optimization(bits):
    regs = register_set(bits)
    reg = regs.reg_op(0, IrSize.INT)
    plain = CodeGenerator(CompilationUnit(), bits, optim_level=0)
    plain.emit_node(IrNode(IrNodeType.LOAD, dest=0, value=0, size=IrSize.INT))
    tuned = CodeGenerator(CompilationUnit(), bits, optim_level=1)
    tuned.emit_node(IrNode(IrNodeType.LOAD, dest=0, value=0, size=IrSize.INT))
    assert plain.lines == [f"mov {reg}, 0"]
    assert tuned.lines == [f"xor {reg}, {reg}"]


def test_move_uses_sized_register_names():
    regs = register_set(64)
    gen = CodeGenerator(CompilationUnit(), 64)
    gen.emit_node(IrNode(IrNodeType.MOVE, dest=1, src=2, size=IrSize.SHORT))
    assert gen.lines == [f"mov {regs.reg16(1)}, {regs.reg16(2)}"]


def test_add_of_one_in_place_is_increment():
    regs = register_set(64)
    gen = CodeGenerator(CompilationUnit(), 64)
    gen.emit_node(IrNode(IrNodeType.IADD, dest=1, a=IrValue.reg(1), b=IrValue.uint(1), size=IrSize.INT))
    assert gen.lines == [f"inc {regs.reg32(1)}"]


def test_comparison_fused_with_jump():
    regs = register_set(64)
    nodes = [
        IrNode(IrNodeType.ISTLT, dest=0, a=IrValue.reg(1), b=IrValue.uint(5), size=IrSize.INT),
        IrNode(IrNodeType.JMPIFN, reg=0, label="L1"),
        IrNode(IrNodeType.NOP),
    ]
    head = ir_chain(nodes)
    gen = CodeGenerator(CompilationUnit(), 64, optim_level=1)
    assert gen.emit_node(head) is nodes[2]
    assert gen.lines == [f"cmp {regs.reg32(1)}, 5", "jge L1"]


def test_comparison_without_fusion_sets_byte():
    regs = register_set(64)
    nodes = [
        IrNode(IrNodeType.ISTLT, dest=0, a=IrValue.reg(1), b=IrValue.uint(5), size=IrSize.INT),
        IrNode(IrNodeType.JMPIFN, reg=0, label="L1"),
    ]
    head = ir_chain(nodes)
    gen = CodeGenerator(CompilationUnit(), 64, optim_level=0)
    assert gen.emit_node(head) is nodes[1]
    assert f"setl {regs.reg8(0)}" in gen.lines


def test_function_prologue_and_frame():
    scope = Scope()
    scope.add_var(Variable(_int(), "x"))
    nodes = [
        IrNode(IrNodeType.PROLOGUE),
        IrNode(IrNodeType.LOAD, dest=0, value=7, size=IrSize.INT),
        IrNode(IrNodeType.IRET, reg=0, size=IrSize.INT),
        IrNode(IrNodeType.EPILOGUE),
    ]
    func = _function("main", nodes, scope)
    lines = generate_assembly(CompilationUnit(funcs=[func]), 64).splitlines()
    frame = align_stack_size(sizeof_scope(scope, 64))
    assert "global main" in lines
    assert lines.index("main:") < lines.index("push rbp")
    assert f"sub rsp, {frame}" in lines
    assert "jmp .ret" in lines and ".ret:" in lines and "leave" in lines
    assert scope.vars[0].addr == scope.vars[0].type.size(64)


def test_static_function_is_not_global():
    nodes = [IrNode(IrNodeType.PROLOGUE), IrNode(IrNodeType.RET), IrNode(IrNodeType.EPILOGUE)]
    func = _function("helper", nodes, attrs=Attribute.STATIC)
    lines = generate_assembly(CompilationUnit(funcs=[func]), 32).splitlines()
    assert "helper:" in lines
    assert "global helper" not in lines


def test_stack_check_requests_builtin_and_externs():
    nodes = [IrNode(IrNodeType.PROLOGUE), IrNode(IrNodeType.RET), IrNode(IrNodeType.EPILOGUE)]
    func = _function("main", nodes)
    text = generate_assembly(CompilationUnit(funcs=[func]), 64, stack_check=True)
    lines = text.splitlines()
    assert "call __check_sp" in lines
    assert "__check_sp:" in lines
    assert "extern puts" in lines and "extern abort" in lines


def test_string_literals_land_in_rodata():
    nodes = [
        IrNode(IrNodeType.PROLOGUE),
        IrNode(IrNodeType.LSTR, reg=0, name="hi\n"),
        IrNode(IrNodeType.RET),
        IrNode(IrNodeType.EPILOGUE),
    ]
    func = _function("f", nodes)
    lines = generate_assembly(CompilationUnit(funcs=[func]), 64).splitlines()
    assert "lea rax, [rel __strings + 0]" in lines
    assert "__strings:" in lines
    assert 'db "hi", 10, 0' in lines


def test_global_variables():
    defined = Variable(_int(), "x", const_init=Value(_int(), 42))
    external = Variable(_int(), "y", attrs=Attribute.EXTERN)
    lines = generate_assembly(CompilationUnit(vars=[defined, external]), 64).splitlines()
    assert lines.index("section .data") < lines.index("global x") < lines.index("x:")
    assert "dd 42" in lines
    assert "extern y" in lines
    assert "y:" not in lines


def test_division_node_requests_builtin():
    gen = CodeGenerator(CompilationUnit(), 32)
    gen.emit_node(IrNode(IrNodeType.IDIV, dest=0, a=IrValue.reg(1), b=IrValue.reg(2), size=IrSize.INT))
    assert "call __divsi32" in gen.lines
    assert gen.builtins.get("__divsi32").requested


def test_call_of_undefined_function_goes_through_got():
    call = IrNode(IrNodeType.FCALL, name="puts", dest=0)
    gen = CodeGenerator(CompilationUnit(), 64)
    gen.emit_node(call)
    assert "call [rel puts wrt ..got]" in gen.lines


def test_call_of_defined_function_is_direct():
    target = _function("g", [IrNode(IrNodeType.PROLOGUE), IrNode(IrNodeType.RET), IrNode(IrNodeType.EPILOGUE)])
    gen = CodeGenerator(CompilationUnit(funcs=[target]), 64)
    gen.emit_node(IrNode(IrNodeType.FCALL, name="g", dest=0))
    assert "call g" in gen.lines


def test_scoped_constant_alloca_is_freed():
    nodes = [
        IrNode(IrNodeType.BEGIN_SCOPE),
        IrNode(IrNodeType.ALLOCA, dest=0, size=IrValue.uint(32)),
        IrNode(IrNodeType.END_SCOPE),
    ]
    gen = CodeGenerator(CompilationUnit(), 64)
    node = ir_chain(nodes)
    while node is not None:
        node = gen.emit_node(node)
    assert "sub rsp, 32" in gen.lines
    assert gen.lines[-1] == "add rsp, 32"


def test_end_scope_without_begin_raises():
    gen = CodeGenerator(CompilationUnit(), 64)
    with pytest.raises(ValueError):
        gen.emit_node(IrNode(IrNodeType.END_SCOPE))


def _increment_chain():
    scope = Scope()
    scope.add_var(Variable(_int(), "x"))
    scope.vars[0].addr = 8
    nodes = [
        IrNode(IrNodeType.LOOKUP, reg=1, scope=scope, var_idx=0),
        IrNode(IrNodeType.READ, dest=2, src=1, size=IrSize.INT),
        IrNode(IrNodeType.IADD, dest=2, a=IrValue.reg(2), b=IrValue.uint(1), size=IrSize.INT),
        IrNode(IrNodeType.WRITE, dest=1, src=2, size=IrSize.INT),
        IrNode(IrNodeType.NOP),
    ]
    return ir_chain(nodes), nodes


def test_lookup_increment_is_folded_at_high_optimization():
    head, nodes = _increment_chain()
    gen = CodeGenerator(CompilationUnit(), 64, optim_level=2)
    assert gen.emit_node(head) is nodes[4]
    assert gen.lines == [f"inc {nasm_size(IrSize.INT, 64)} [rbp - 8]"]


def test_lookup_is_plain_lea_without_optimization():
    head, nodes = _increment_chain()
    gen = CodeGenerator(CompilationUnit(), 64, optim_level=0)
    assert gen.emit_node(head) is nodes[1]
    assert gen.lines == [f"lea {register_set(64).mreg(1)}, [rbp - 8]"]


def test_widening_cast_sign_extends():
    regs = register_set(64)
    gen = CodeGenerator(CompilationUnit(), 64)
    gen.emit_node(IrNode(IrNodeType.IICAST, dest=1, src=2, ds=IrSize.INT, ss=IrSize.BYTE, sign_extend=True))
    assert gen.lines == [f"movsx {regs.reg32(1)}, {regs.reg8(2)}"]


def test_main_without_return_value_clears_result():
    nodes = [
        IrNode(IrNodeType.PROLOGUE),
        IrNode(IrNodeType.NOP),
        IrNode(IrNodeType.NOP),
        IrNode(IrNodeType.EPILOGUE),
    ]
    func = _function("main", nodes)
    lines = generate_assembly(CompilationUnit(funcs=[func]), 64, optim_level=1).splitlines()
    assert lines.index("xor rax, rax") < lines.index(".ret:")


def test_register_out_of_range_raises():
    gen = CodeGenerator(CompilationUnit(), 32)
    with pytest.raises(RegisterError):
        gen.emit_node(IrNode(IrNodeType.MOVE, dest=20, src=0, size=IrSize.INT))


def test_unsupported_operand_size_raises():
    gen = CodeGenerator(CompilationUnit(), 64)
    with pytest.raises(RegisterError):
        gen.emit_node(IrNode(IrNodeType.LOAD, dest=0, value=1, size=IrSize.VOID))


def test_invalid_width_raises():
    with pytest.raises(ValueError):
        generate_assembly(CompilationUnit(), 16)