import pytest

from solflame.call_tree import CallFrame, CallTree, FrameKind
from solflame.folding import (
    CallTraceNode,
    flatten,
    fold_call_trace,
    parse_folded_line,
    self_gas_of,
)


def frame(name, start, end, parent=None):
    return CallFrame(title=name, name=name, gas_start=start, gas_end=end,
                     kind=FrameKind.EXTERNAL_CALL, parent=parent)


def test_flatten_empty_tree():
    assert flatten(CallTree()) == []


def test_flatten_root_only():
    tree = CallTree()
    tree.add(frame("A", 0, 21))
    assert flatten(tree) == ["A 21"]


def test_flatten_siblings_in_reverse_call_order():
    tree = CallTree()
    root = tree.add(frame("A", 0, 100))
    tree.add(frame("f", 10, 30, root))
    g = tree.add(frame("g", 40, 90, root))
    tree.add(frame("h", 50, 60, g))
    assert flatten(tree) == ["A;g;h 10", "A;g 40", "A;f 20", "A 30"]


def test_flatten_clamps_negative_self_gas():
    tree = CallTree()
    root = tree.add(frame("A", 0, 10))
    tree.add(frame("f", 0, 25, root))
    assert flatten(tree) == ["A;f 25", "A 0"]
    assert self_gas_of(tree) == [0, 25]


def test_flatten_deep_tree():
    tree = CallTree()
    parent = tree.add(frame("A", 0, 5000))
    for depth in range(1, 2000):
        parent = tree.add(frame(f"f{depth}", depth, 5000 - depth, parent))
    lines = flatten(tree)
    assert len(lines) == 2000
    assert lines[-1] == "A 2"


class TestParseFoldedLine:
    def test_valid(self):
        assert parse_folded_line("A;f;B 15\n") == (["A", "f", "B"], 15)

    def test_frame_names_with_spaces(self):
        assert parse_folded_line("A;f internal jump 3") == (["A", "f internal jump"], 3)

    @pytest.mark.parametrize("line", ["nonsense", "A;f lots", ""])
    def test_invalid(self, line):
        with pytest.raises(ValueError):
            parse_folded_line(line)


class TestFoldCallTrace:
    def nodes(self):
        return [
            CallTraceNode(parent=None, gas_used=100, children=[1, 2], contract="Vault",
                          signature="deposit()"),
            CallTraceNode(parent=0, gas_used=30, contract="Token",
                          signature="transfer(address,uint256)"),
            CallTraceNode(parent=0, gas_used=20),
        ]

    def test_lines_follow_arena_order(self):
        assert fold_call_trace(self.nodes()) == [
            "Vault.deposit() 50",
            "Vault.deposit();Token.transfer(address,uint256) 30",
            "Vault.deposit();<unknown-contract>.<unknown-function> 20",
        ]

    def test_weight_is_not_clamped(self):
        nodes = self.nodes()
        nodes[0].gas_used = 10
        assert fold_call_trace(nodes)[0] == "Vault.deposit() -40"

    def test_display(self):
        assert CallTraceNode(parent=None, gas_used=1, contract="C").display == "C.<unknown-function>"
