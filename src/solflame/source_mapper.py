"""
Source mapping for EVM bytecode

Maps program counters of deployed bytecode to Solidity source ranges using the
compressed source maps emitted by solc (``srcmap-runtime``), including the
jump classification of each instruction.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from eth_utils import decode_hex, to_checksum_address

from .opcodes import push_size
from .step import JumpType


class SourceMapError(ValueError):
    """Raised when a source map or contract artifact cannot be loaded."""
    pass


@dataclass
class SourceElement:
    """One decoded entry of a solc source map."""
    start: int
    length: int
    file_index: int
    jump: JumpType = JumpType.NONE


def parse_source_map(source_map: str) -> List[SourceElement]:
    """
    Parse the solc source map format ``s:l:f:j[:m];s:l:f:j[:m];...``.

    Empty fields inherit the value of the previous entry.
    """
    elements = []
    if not source_map:
        return elements

    prev_s, prev_l, prev_f, prev_j = 0, 0, -1, JumpType.NONE
    for entry in source_map.split(';'):
        parts = entry.split(':')
        try:
            s = int(parts[0]) if parts[0] else prev_s
            l = int(parts[1]) if len(parts) > 1 and parts[1] else prev_l
            f = int(parts[2]) if len(parts) > 2 and parts[2] else prev_f
            j = JumpType.parse(parts[3]) if len(parts) > 3 and parts[3] else prev_j
        except ValueError as e:
            raise SourceMapError(f"Invalid source map entry {entry!r}: {e}") from e
        elements.append(SourceElement(s, l, f, j))
        prev_s, prev_l, prev_f, prev_j = s, l, f, j

    return elements


def build_pc_ic_map(bytecode: Union[str, bytes]) -> Dict[int, int]:
    """Map each instruction's program counter to its instruction index."""
    if isinstance(bytecode, str):
        bytecode = decode_hex(bytecode) if bytecode else b''
    pc_to_ic = {}
    pc = 0
    ic = 0
    while pc < len(bytecode):
        pc_to_ic[pc] = ic
        pc += 1 + push_size(bytecode[pc])
        ic += 1
    return pc_to_ic


@dataclass
class ContractSource:
    """Runtime bytecode, source map and sources of one deployed contract."""
    name: str
    address: Optional[str]
    bytecode: str
    source_map: str
    sources: Dict[int, bytes] = field(default_factory=dict)

    def __post_init__(self):
        if self.address:
            self.address = to_checksum_address(self.address)
        self.elements = parse_source_map(self.source_map)
        self.pc_to_ic = build_pc_ic_map(self.bytecode)

    def element_at(self, pc: int) -> Optional[SourceElement]:
        ic = self.pc_to_ic.get(pc)
        if ic is None or ic >= len(self.elements):
            return None
        return self.elements[ic]

    def jump_at(self, pc: int) -> JumpType:
        element = self.element_at(pc)
        return element.jump if element else JumpType.NONE

    def source_code_at(self, pc: int) -> str:
        """Source text the instruction at ``pc`` maps to, empty when unmapped."""
        element = self.element_at(pc)
        if element is None or element.file_index < 0:
            return ""
        source = self.sources.get(element.file_index)
        if source is None:
            return ""
        return source[element.start:element.start + element.length].decode('utf-8', errors='replace')


def _read_source(path: str, base_dir: Path) -> Optional[bytes]:
    for candidate in (Path(path), base_dir / path):
        if candidate.exists():
            return candidate.read_bytes()
    return None


def load_contract_artifact(artifact_path: Union[str, Path], name: str,
                           address: Optional[str] = None) -> ContractSource:
    """
    Load a contract from solc ``--combined-json bin-runtime,srcmap-runtime`` output.

    Source files listed in ``sourceList`` are read relative to the working
    directory or, failing that, to the artifact's directory.
    """
    artifact_path = Path(artifact_path)
    if not artifact_path.exists():
        raise FileNotFoundError(f"Artifact not found: {artifact_path}")
    with open(artifact_path) as f:
        artifact = json.load(f)

    contracts = artifact.get('contracts', {})
    entry = None
    for key, value in contracts.items():
        if key == name or key.endswith(f":{name}"):
            entry = value
            break
    if entry is None:
        raise SourceMapError(f"Contract {name} not found in {artifact_path}")

    bytecode = entry.get('bin-runtime')
    source_map = entry.get('srcmap-runtime')
    if bytecode is None or source_map is None:
        raise SourceMapError(f"{artifact_path} has no bin-runtime/srcmap-runtime for {name}")

    sources = {}
    for index, source_path in enumerate(artifact.get('sourceList', [])):
        text = _read_source(source_path, artifact_path.parent)
        if text is not None:
            sources[index] = text

    return ContractSource(
        name=name,
        address=address,
        bytecode=bytecode,
        source_map=source_map,
        sources=sources,
    )


def _mapping_entries(mapping_file: Path, keys: Iterable[str]) -> List[Dict[str, Any]]:
    """Contract entries of a mapping file, each checked for the given keys."""
    if not mapping_file.exists():
        raise FileNotFoundError(f"Mapping file not found: {mapping_file}")
    with open(mapping_file) as f:
        mapping_data = json.load(f)

    entries = mapping_data.get('contracts', []) if isinstance(mapping_data, dict) else None
    if not isinstance(entries, list):
        raise SourceMapError(f"{mapping_file}: 'contracts' must be an array")
    for i, contract in enumerate(entries):
        if not isinstance(contract, dict):
            raise SourceMapError(f"{mapping_file}: contract entry {i} is not an object")
        for key in keys:
            if key not in contract:
                raise SourceMapError(f"{mapping_file}: contract entry {i} has no '{key}'")
    return entries


def load_contracts_mapping(mapping_file: Union[str, Path]) -> Dict[str, ContractSource]:
    """
    Load contracts from a mapping file.

    Expected format:
    {
        "contracts": [
            {
                "address": "0x...",
                "name": "ContractName",
                "artifact": "./build/combined.json"
            }
        ]
    }
    """
    mapping_file = Path(mapping_file)
    loaded = {}
    for contract in _mapping_entries(mapping_file, ('address', 'name', 'artifact')):
        artifact = Path(contract['artifact'])
        # Make path relative to mapping file if not absolute
        if not artifact.is_absolute():
            artifact = mapping_file.parent / artifact
        source = load_contract_artifact(artifact, contract['name'], contract['address'])
        loaded[source.address] = source

    return loaded


def load_contract_names(mapping_file: Union[str, Path]) -> Dict[str, str]:
    """Checksummed address -> contract name, without loading any artifact."""
    return {
        to_checksum_address(contract['address']): contract['name']
        for contract in _mapping_entries(Path(mapping_file), ('address', 'name'))
    }
