import pytest

from bccx86.ir import IrNode, IrNodeType, IrSize, IrValue, ir_chain
from bccx86.optim import mul_to_func, target_optim_ir, target_post_optim_ir, value_to_node


def _binary(kind, size, a, b, dest=0):
    return IrNode(kind, dest=dest, a=a, b=b, size=size)


def test_value_to_node_register():
    node = value_to_node(IrValue.reg(2), 1, IrSize.SHORT)
    assert node.type is IrNodeType.MOVE
    assert (node.dest, node.src, node.size) == (1, 2, IrSize.SHORT)


def test_value_to_node_constant():
    node = value_to_node(IrValue.uint(42), 0, IrSize.INT)
    assert node.type is IrNodeType.LOAD
    assert (node.dest, node.value, node.size) == (0, 42, IrSize.INT)


@pytest.mark.parametrize(
    "kind, size, bits, name",
    [
        (IrNodeType.IMUL, IrSize.INT, 32, "__mulsi32"),
        (IrNodeType.UMUL, IrSize.BYTE, 32, "__mului8"),
        (IrNodeType.IDIV, IrSize.SHORT, 32, "__divsi16"),
        (IrNodeType.UDIV, IrSize.INT, 64, "__divui32"),
        (IrNodeType.IMOD, IrSize.LONG, 64, "__modsi64"),
        (IrNodeType.UMOD, IrSize.PTR, 64, "__modui64"),
    ],
)
def test_arith_becomes_call(kind, size, bits, name):
    node = _binary(kind, size, IrValue.reg(1), IrValue.uint(7), dest=1)
    assert mul_to_func(node, bits) is True
    assert node.type is IrNodeType.IFCALL
    assert node.name == name
    assert node.dest == 1
    first, second = node.params
    assert (first.type, first.src, first.dest) == (IrNodeType.MOVE, 1, 1)
    assert (second.type, second.value, second.dest) == (IrNodeType.LOAD, 7, 1)


def test_links_are_kept():
    before = IrNode(IrNodeType.NOP)
    mul = _binary(IrNodeType.IMUL, IrSize.INT, IrValue.reg(0), IrValue.reg(1))
    after = IrNode(IrNodeType.RET)
    head = ir_chain([before, mul, after])
    assert mul_to_func(head, 32) is True
    assert [n.type for n in head] == [IrNodeType.NOP, IrNodeType.IFCALL, IrNodeType.RET]
    assert mul.prev is before and mul.next is after


def test_other_nodes_untouched():
    head = ir_chain([
        _binary(IrNodeType.IADD, IrSize.INT, IrValue.reg(0), IrValue.uint(1)),
        IrNode(IrNodeType.RET),
    ])
    assert mul_to_func(head, 64) is False
    assert [n.type for n in head] == [IrNodeType.IADD, IrNodeType.RET]
    assert mul_to_func(None, 64) is False


def test_post_optim_reaches_fixed_point():
    head = ir_chain([
        _binary(IrNodeType.UDIV, IrSize.INT, IrValue.reg(0), IrValue.reg(1)),
        _binary(IrNodeType.IMOD, IrSize.INT, IrValue.reg(0), IrValue.reg(1)),
    ])
    assert target_post_optim_ir(head, 32) is True
    assert all(n.type is IrNodeType.IFCALL for n in head)
    assert target_post_optim_ir(head, 32) is False


def test_target_optim_changes_nothing():
    node = _binary(IrNodeType.IMUL, IrSize.INT, IrValue.reg(0), IrValue.reg(1))
    assert target_optim_ir(node) is False
    assert node.type is IrNodeType.IMUL