"""
Execution steps

A Step is one executed EVM instruction together with the slice of source code
its program counter maps to and the jump classification the compiler attached
to that source location.
"""

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .name_resolver import resolve_any_name, resolve_contract_name, resolve_function_name
from .opcodes import opcode_name, opcode_number


class JumpType(str, Enum):
    """Source-map jump classification of an instruction."""
    IN = "In"
    OUT = "Out"
    NONE = "None"

    @classmethod
    def parse(cls, value: Optional[str]) -> "JumpType":
        """Parse a solc source-map letter (i/o/-) or a spelled-out name."""
        if value is None:
            return cls.NONE
        if isinstance(value, JumpType):
            return value
        normalized = str(value).strip().lower()
        if normalized in ('i', 'in'):
            return cls.IN
        if normalized in ('o', 'out'):
            return cls.OUT
        if normalized in ('-', '', 'none', 'regular'):
            return cls.NONE
        raise ValueError(f"Unknown jump classification: {value!r}")


class StepFormatError(ValueError):
    """Raised when a serialized step cannot be decoded."""
    pass


@dataclass
class Step:
    """Represents a single executed instruction and its source mapping."""
    instruction: int
    program_counter: int
    total_gas_used: int
    jump: JumpType = JumpType.NONE
    source_code: str = ""

    @property
    def opcode(self) -> str:
        return opcode_name(self.instruction)

    @property
    def contract_name(self) -> Optional[str]:
        return resolve_contract_name(self.source_code)

    @property
    def function_name(self) -> Optional[str]:
        return resolve_function_name(self.source_code)

    @property
    def name(self) -> Optional[str]:
        return resolve_any_name(self.source_code)

    def short_source(self, max_len: int = 90) -> str:
        """Source snippet truncated for display."""
        if len(self.source_code) > max_len:
            return self.source_code[:max_len]
        return self.source_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            'instruction': self.instruction,
            'op': self.opcode,
            'pc': self.program_counter,
            'total_gas_used': self.total_gas_used,
            'jump': self.jump.value,
            'source_code': self.source_code,
        }


def _decode_instruction(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"invalid instruction {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if value.lower().startswith('0x'):
            return int(value, 16)
        number = opcode_number(value)
        if number is not None:
            return number
    raise ValueError(f"invalid instruction {value!r}")


def step_from_dict(entry: Dict[str, Any]) -> Step:
    """Decode one step entry."""
    instruction = entry.get('instruction', entry.get('op'))
    if instruction is None:
        raise ValueError("missing 'instruction'")
    pc = entry.get('pc', entry.get('program_counter', 0))
    gas = entry.get('total_gas_used')
    if gas is None:
        raise ValueError("missing 'total_gas_used'")
    source_code = entry.get('source_code')
    if source_code is not None and not isinstance(source_code, str):
        raise ValueError("'source_code' must be a string")
    return Step(
        instruction=_decode_instruction(instruction),
        program_counter=int(pc),
        total_gas_used=int(gas),
        jump=JumpType.parse(entry.get('jump')),
        source_code=source_code or "",
    )


def steps_from_json(data: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Step]:
    """Decode a step document: either ``{"steps": [...]}`` or a bare list."""
    if isinstance(data, dict):
        if 'steps' not in data:
            raise StepFormatError("Step document has no 'steps' array")
        data = data['steps']
    if not isinstance(data, list):
        raise StepFormatError("Steps must be a JSON array")

    steps = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise StepFormatError(f"Step {i}: expected an object")
        try:
            steps.append(step_from_dict(entry))
        except (TypeError, ValueError) as e:
            raise StepFormatError(f"Step {i}: {e}") from e
    return steps


def load_steps(path: Union[str, Path]) -> List[Step]:
    """Load steps from a JSON file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Steps file not found: {path}")
    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise StepFormatError(f"{path}: {e}") from e
    return steps_from_json(data)
