import pytest

from bccx86.ir import IrSize
from bccx86.regs import RegisterError, register_set


def test_32_bit_names():
    regs = register_set(32)
    assert regs.reg32(0) == "eax"
    assert regs.reg16(2) == "dx"
    assert regs.reg8(2) == "dl"
    assert regs.mreg(1) == "ecx"
    assert regs.sp == "esp" and regs.bp == "ebp"
    assert regs.regsize == 4


def test_64_bit_names():
    regs = register_set(64)
    assert regs.reg64(0) == "rax"
    assert regs.mreg(1) == "rdi"
    assert regs.reg32(3) == "edx"
    assert regs.reg8(1) == "dil"
    assert regs.sp == "rsp" and regs.bx == "rbx"
    assert regs.regsize == 8


def test_dx_index_names_dx():
    for bits in (32, 64):
        regs = register_set(bits)
        assert regs.mreg(regs.dx_index) == regs.dx


def test_64_bit_tables_have_equal_length():
    regs = register_set(64)
    assert len(regs.regs8) == len(regs.regs16) == len(regs.regs32) == len(regs.regs64)


def test_param_regs_are_valid_registers():
    regs = register_set(64)
    assert [regs.mreg(i) for i in regs.param_regs] == ["rdi", "rsi", "rdx", "rcx", "r8", "r9"]


@pytest.mark.parametrize(
    "bits, size, expected",
    [
        (32, IrSize.BYTE, "al"),
        (32, IrSize.CHAR, "al"),
        (32, IrSize.SHORT, "ax"),
        (32, IrSize.INT, "eax"),
        (32, IrSize.LONG, "eax"),
        (32, IrSize.PTR, "eax"),
        (64, IrSize.BYTE, "al"),
        (64, IrSize.SHORT, "ax"),
        (64, IrSize.INT, "eax"),
        (64, IrSize.LONG, "rax"),
        (64, IrSize.PTR, "rax"),
    ],
)
def test_reg_op_sizes(bits, size, expected):
    assert register_set(bits).reg_op(0, size) == expected


@pytest.mark.parametrize("size", [IrSize.VOID, IrSize.STRUCT])
def test_reg_op_rejects_non_integer_sizes(size):
    with pytest.raises(RegisterError):
        register_set(64).reg_op(0, size)


def test_out_of_range_register():
    regs = register_set(32)
    with pytest.raises(RegisterError, match="out of range"):
        regs.reg32(len(regs.regs32))
    with pytest.raises(RegisterError):
        regs.reg8(-1)


def test_no_64_bit_registers_on_32_bit_target():
    with pytest.raises(RegisterError):
        register_set(32).reg64(0)


def test_unsupported_width():
    with pytest.raises(ValueError):
        register_set(16)