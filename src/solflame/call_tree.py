"""
Call tree reconstruction

Replays an ordered sequence of Steps and infers call and return boundaries
from opcodes and source-map jump classifications. The tree is an arena: frames
live in a list and refer to their parent and children by index, and the
builder keeps a single cursor to the frame currently open.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence

from .name_resolver import extract_after_prefix, resolve_contract_name
from .opcodes import CALL_OPCODES, EXIT_OPCODES
from .step import JumpType, Step


class FrameKind(str, Enum):
    """How a frame was opened."""
    EXTERNAL_CALL = "external"
    INTERNAL_JUMP = "internal"
    NATIVE_CALL = "native"
    OPCODE = "opcode"


@dataclass
class CallFrame:
    """A node of the reconstructed call tree."""
    title: str
    name: str
    gas_start: int
    kind: FrameKind
    gas_end: Optional[int] = None
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)

    @property
    def closed(self) -> bool:
        return self.gas_end is not None

    @property
    def total_gas(self) -> int:
        """Gas consumed over the frame's lifetime, 0 while unclosed."""
        if self.gas_end is None:
            return 0
        return self.gas_end - self.gas_start


class CallTree:
    """Arena of call frames. Frame 0 is the root."""

    def __init__(self):
        self.frames: List[CallFrame] = []

    def add(self, frame: CallFrame) -> int:
        """Append a frame, link it to its parent and return its index."""
        index = len(self.frames)
        self.frames.append(frame)
        if frame.parent is not None:
            self.frames[frame.parent].children.append(index)
        return index

    @property
    def root(self) -> CallFrame:
        return self.frames[0]

    def __len__(self) -> int:
        return len(self.frames)

    def __getitem__(self, index: int) -> CallFrame:
        return self.frames[index]

    def children_of(self, index: int) -> List[CallFrame]:
        return [self.frames[child] for child in self.frames[index].children]

    def depth_of(self, index: int) -> int:
        depth = 0
        parent = self.frames[index].parent
        while parent is not None:
            depth += 1
            parent = self.frames[parent].parent
        return depth

    def walk(self) -> Iterator[int]:
        """Yield frame indices in pre-order, children in call order."""
        if not self.frames:
            return
        stack = [0]
        while stack:
            index = stack.pop()
            yield index
            stack.extend(reversed(self.frames[index].children))

    def format_tree(self) -> str:
        """Indented ``title (gas: n)`` listing of the whole tree."""
        lines = []
        for index in self.walk():
            frame = self.frames[index]
            indent = "  " * self.depth_of(index)
            lines.append(f"{indent}{frame.title} (gas: {frame.total_gas})")
        return "\n".join(lines)

    def __repr__(self):
        return f"CallTree(frames={len(self.frames)})"


class TraceError(Exception):
    """Base class for traces the builder cannot turn into a call tree."""
    pass


class MalformedTraceError(TraceError):
    """Raised when a trace cannot even start a tree."""
    pass


class TraceBuildError(TraceError):
    """
    Raised when construction stops part way through a trace.

    ``partial_tree`` holds every frame built before the failing step; frames
    closed so far keep their ``gas_end``.
    """

    def __init__(self, message: str, step_index: int, partial_tree: CallTree):
        super().__init__(f"step {step_index}: {message}")
        self.step_index = step_index
        self.partial_tree = partial_tree


class CallTreeBuilder:
    """
    Builds a CallTree from an ordered list of Steps.

    With ``opcode_frames`` enabled every step also contributes an atomic frame
    named after its opcode, which unmerges the stacks down to instruction
    level.
    """

    def __init__(self, opcode_frames: bool = False):
        self.opcode_frames = opcode_frames
        self._steps: Sequence[Step] = ()
        self._tree = CallTree()
        self._current: Optional[int] = None

    def build(self, steps: Sequence[Step]) -> CallTree:
        """Replay ``steps`` and return the reconstructed tree."""
        if not steps:
            raise MalformedTraceError("Trace is empty")
        first = steps[0]
        if first.total_gas_used != 0:
            raise MalformedTraceError(
                f"First step must have total_gas_used 0, got {first.total_gas_used}"
            )
        contract_name = resolve_contract_name(first.source_code)
        if contract_name is None:
            raise MalformedTraceError(
                f"First step is not inside a contract definition: {first.short_source(60)!r}"
            )

        self._steps = steps
        self._tree = CallTree()
        self._current = self._tree.add(CallFrame(
            title=f"{contract_name}.fallback",
            name=contract_name,
            gas_start=0,
            kind=FrameKind.EXTERNAL_CALL,
        ))

        for i in range(1, len(steps)):
            self._process_step(i)

        return self._tree

    def _next_step(self, i: int) -> Optional[Step]:
        if i + 1 < len(self._steps):
            return self._steps[i + 1]
        return None

    def _process_step(self, i: int):
        step = self._steps[i]

        # internal function call starts
        if step.jump == JumpType.IN:
            self._open_internal_jump(i)

        # unmerged stacks show every opcode as its own frame
        if self.opcode_frames:
            self._add_opcode_frame(i)

        if step.instruction in CALL_OPCODES:
            self._open_external_call(i)

        # internal function call ends
        if step.jump == JumpType.OUT:
            self._close_frame(i, may_close_root=False)

        # VM frame ends
        if step.instruction in EXIT_OPCODES:
            self._close_frame(i, may_close_root=True)

    def _require_open_frame(self, i: int) -> int:
        if self._current is None:
            raise TraceBuildError("no open frame after the root frame returned", i, self._tree)
        return self._current

    def _open_internal_jump(self, i: int):
        step = self._steps[i]
        name = step.name
        if name is None:
            next_step = self._next_step(i)
            if next_step is not None:
                name = next_step.function_name
        if name is None:
            # jump into code with no recoverable name, e.g. the dispatcher
            return
        parent = self._require_open_frame(i)
        self._current = self._tree.add(CallFrame(
            title=f"{name} internal jump",
            name=name,
            gas_start=step.total_gas_used,
            kind=FrameKind.INTERNAL_JUMP,
            parent=parent,
        ))

    def _add_opcode_frame(self, i: int):
        step = self._steps[i]
        next_step = self._next_step(i)
        parent = self._require_open_frame(i)
        self._tree.add(CallFrame(
            title=step.opcode,
            name=step.opcode,
            gas_start=step.total_gas_used,
            gas_end=next_step.total_gas_used if next_step is not None else None,
            kind=FrameKind.OPCODE,
            parent=parent,
        ))

    def _open_external_call(self, i: int):
        step = self._steps[i]
        next_step = self._next_step(i)
        parent = self._require_open_frame(i)

        contract_name = next_step.contract_name if next_step is not None else None
        if contract_name is not None:
            self._current = self._tree.add(CallFrame(
                title=f"{contract_name}.fallback",
                name=contract_name,
                gas_start=step.total_gas_used,
                kind=FrameKind.EXTERNAL_CALL,
                parent=parent,
            ))
            return

        # target without source, e.g. a precompile
        name = extract_after_prefix(step.source_code, "", ('(',))
        if name is None and next_step is not None:
            name = next_step.name
        if name is None:
            raise TraceBuildError(
                f"cannot name the native call at pc {step.program_counter}: "
                f"{step.short_source(60)!r}",
                i,
                self._tree,
            )
        gas_end = next_step.total_gas_used if next_step is not None else step.total_gas_used
        self._tree.add(CallFrame(
            title=f"{name} nativecode",
            name=name,
            gas_start=step.total_gas_used,
            gas_end=gas_end,
            kind=FrameKind.NATIVE_CALL,
            parent=parent,
        ))

    def _close_frame(self, i: int, may_close_root: bool):
        step = self._steps[i]
        current = self._require_open_frame(i)
        frame = self._tree[current]
        if frame.parent is None and not may_close_root:
            raise TraceBuildError(
                f"jump out of {frame.name} with no enclosing frame: {step.short_source(60)!r}",
                i,
                self._tree,
            )
        frame.gas_end = step.total_gas_used
        # closing the root leaves no open frame
        self._current = frame.parent


def build_call_tree(steps: Sequence[Step], opcode_frames: bool = False) -> CallTree:
    """Build the call tree of an ordered step sequence."""
    return CallTreeBuilder(opcode_frames=opcode_frames).build(steps)
