"""
JSON Serialization for solflame output

Provides serialization of call trees, steps and call-trace arenas into plain
JSON-compatible structures for scripting and inspection.
"""

import json
from typing import Any, Dict, List, Sequence

from hexbytes import HexBytes

from .call_tree import CallTree
from .folding import CallTraceNode, self_gas_of
from .step import Step


class TreeSerializer:
    """Serializes call trees and steps to JSON-compatible dicts."""

    def _convert_to_serializable(self, obj: Any) -> Any:
        """Convert non-serializable objects to JSON-serializable format."""
        if isinstance(obj, HexBytes):
            return '0x' + bytes(obj).hex()
        elif isinstance(obj, bytes):
            return '0x' + obj.hex()
        elif isinstance(obj, dict):
            return {k: self._convert_to_serializable(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [self._convert_to_serializable(item) for item in obj]
        else:
            return obj

    def serialize_tree(self, tree: CallTree) -> Dict[str, Any]:
        """
        Serialize a call tree into nested frame dicts.

        Each frame becomes ``{title, name, kind, gas_start, gas_end, gas_used,
        self_gas, children}``; ``gas_end`` is None for frames left unclosed.
        """
        if len(tree) == 0:
            return {}

        self_gas = self_gas_of(tree)
        nodes: Dict[int, Dict[str, Any]] = {}
        for index in tree.walk():
            frame = tree[index]
            node = {
                "title": frame.title,
                "name": frame.name,
                "kind": frame.kind.value,
                "gas_start": frame.gas_start,
                "gas_end": frame.gas_end,
                "gas_used": frame.total_gas,
                "self_gas": self_gas[index],
                "children": [],
            }
            nodes[index] = node
            # pre-order visits a parent before its children
            if frame.parent is not None:
                nodes[frame.parent]["children"].append(node)
        return nodes[0]

    def serialize_steps(self, steps: Sequence[Step]) -> Dict[str, Any]:
        """Serialize steps in the format accepted by the ``steps`` command."""
        return {"steps": [step.to_dict() for step in steps]}

    def serialize_call_trace(self, nodes: List[CallTraceNode]) -> List[Dict[str, Any]]:
        """Serialize a call-trace arena, one dict per node in arena order."""
        return [
            {
                "index": i,
                "parent": node.parent,
                "children": list(node.children),
                "contract": node.contract,
                "signature": node.signature,
                "display": node.display,
                "gas_used": node.gas_used,
            }
            for i, node in enumerate(nodes)
        ]

    def to_json(self, data: Any, indent: int = 2) -> str:
        return json.dumps(self._convert_to_serializable(data), indent=indent)
