"""
Folded stack lines

Turns call trees into ``frame;frame;frame <weight>`` lines, the input format
of flame-graph renderers. Two sources are supported: a CallTree rebuilt from
execution steps, and a decoded call-trace arena where every node already
carries its parent, children and gas used.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .call_tree import CallTree

UNKNOWN_CONTRACT = "<unknown-contract>"
UNKNOWN_FUNCTION = "<unknown-function>"


def flatten(tree: CallTree) -> List[str]:
    """
    Fold a call tree into one stack line per frame.

    Frames are visited in pre-order. A frame's line is reserved when the frame
    is entered and its self gas (total gas minus the children's total gas,
    clamped at zero) is filled in once all children have been visited. The
    result is reversed, so the deepest recorded entries come first.
    """
    if len(tree) == 0:
        return []

    lines: List[str] = []
    paths: Dict[int, str] = {}
    slots: Dict[int, int] = {}
    # frames are revisited once their children are folded
    stack = [(0, False)]
    while stack:
        index, children_done = stack.pop()
        frame = tree[index]
        if not children_done:
            if frame.parent is None:
                paths[index] = frame.name
            else:
                paths[index] = f"{paths[frame.parent]};{frame.name}"
            # the line is still incomplete, gas is added after the children
            slots[index] = len(lines)
            lines.append(paths[index])
            stack.append((index, True))
            stack.extend((child, False) for child in reversed(frame.children))
        else:
            child_gas = sum(tree[child].total_gas for child in frame.children)
            gas_here = max(0, frame.total_gas - child_gas)
            lines[slots[index]] = f"{lines[slots[index]]} {gas_here}"

    lines.reverse()
    return lines


def _self_gas_by_frame(tree: CallTree) -> Dict[int, int]:
    self_gas = {}
    # children come after their parent in pre-order, so walk it backwards
    for index in reversed(list(tree.walk())):
        frame = tree[index]
        child_gas = sum(tree[child].total_gas for child in frame.children)
        self_gas[index] = max(0, frame.total_gas - child_gas)
    return self_gas


def self_gas_of(tree: CallTree) -> List[int]:
    """Self gas of every frame, indexed like ``tree.frames``."""
    self_gas = _self_gas_by_frame(tree)
    return [self_gas[i] for i in range(len(tree))]


def parse_folded_line(line: str) -> Tuple[List[str], int]:
    """Split a folded stack line into its frames and weight."""
    stack, _, count = line.strip().rpartition(" ")
    if not stack:
        raise ValueError(f"Invalid folded stack line: {line!r}")
    return stack.split(";"), int(count)


@dataclass
class CallTraceNode:
    """A node of a decoded call-trace arena."""
    parent: Optional[int]
    gas_used: int
    children: List[int] = field(default_factory=list)
    contract: Optional[str] = None
    signature: Optional[str] = None

    @property
    def display(self) -> str:
        contract = self.contract or UNKNOWN_CONTRACT
        function = self.signature or UNKNOWN_FUNCTION
        return f"{contract}.{function}"


def fold_call_trace(nodes: List[CallTraceNode]) -> List[str]:
    """
    Fold a call-trace arena, one line per node in arena order.

    The weight of a node is its gas used minus the gas used by its direct
    children.
    """
    lines = []
    for node in nodes:
        labels = []
        current = node
        while True:
            labels.append(current.display)
            if current.parent is None:
                break
            current = nodes[current.parent]
        labels.reverse()

        gas = node.gas_used - sum(nodes[child].gas_used for child in node.children)
        lines.append(f"{';'.join(labels)} {gas}")
    return lines
