"""
Transaction Tracer for gas flame graphs

Fetches execution traces of mined transactions from a node and turns them into
the inputs of the flame graph pipeline: instruction-level Steps annotated with
source mappings, or a decoded call-trace arena.
"""

import json
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes
from web3 import Web3

from .colors import info, success, warning
from .folding import CallTraceNode
from .opcodes import INVALID_OPCODE, opcode_number
from .source_mapper import ContractSource
from .step import JumpType, Step

# Opcodes whose callee code address is the second stack item from the top
CALL_FAMILY = ('CALL', 'CALLCODE', 'DELEGATECALL', 'STATICCALL')


@dataclass
class PendingCall:
    """A call instruction whose callee is still executing."""
    depth: int
    gas: int
    total_gas_used: int


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, HexBytes)):
        return int.from_bytes(value, 'big')
    if isinstance(value, str):
        return int(value, 16) if value.startswith('0x') else int(value)
    return int(value)


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, HexBytes)):
        return '0x' + bytes(value).hex()
    return str(value)


def extract_address_from_stack(stack_value: Any) -> Optional[str]:
    """Checksummed address held in a 32-byte stack word."""
    try:
        word = _to_int(stack_value)
    except ValueError:
        return None
    return to_checksum_address(word.to_bytes(32, 'big')[-20:])


def steps_from_struct_logs(struct_logs: List[Dict[str, Any]],
                           contracts: Dict[str, ContractSource],
                           entry_address: Optional[str]) -> List[Step]:
    """
    Convert ``debug_traceTransaction`` struct logs into Steps.

    The executing contract is tracked per call depth from the target address
    of each CALL-family instruction; instructions of contracts without a
    source map get no source code and no jump classification.

    Struct logs report the gas left in the executing frame, so the cumulative
    counter is rebuilt: steps at the same depth add the gas difference between
    them, and when a call returns the counter continues from the caller's
    view of what the call cost.
    """
    steps: List[Step] = []
    addresses: List[Optional[str]] = [to_checksum_address(entry_address) if entry_address else None]
    pending: List[PendingCall] = []
    total_gas_used = 0

    for i, log in enumerate(struct_logs):
        depth = log['depth']
        gas = _to_int(log['gas'])

        if i > 0:
            prev = struct_logs[i - 1]
            prev_depth = prev['depth']
            prev_gas = _to_int(prev['gas'])
            if depth == prev_depth:
                total_gas_used += max(0, prev_gas - gas)
            elif depth > prev_depth:
                pending.append(PendingCall(prev_depth, prev_gas, steps[-1].total_gas_used))
                target = None
                if prev['op'] in CALL_FAMILY and len(prev.get('stack') or []) >= 2:
                    target = extract_address_from_stack(prev['stack'][-2])
                addresses.append(target)
            else:
                call = None
                while pending and pending[-1].depth >= depth:
                    call = pending.pop()
                    addresses.pop()
                if call is not None:
                    total_gas_used = max(total_gas_used, call.total_gas_used + max(0, call.gas - gas))

        contract = contracts.get(addresses[-1]) if addresses and addresses[-1] else None
        pc = log['pc']
        instruction = opcode_number(log['op'])
        steps.append(Step(
            instruction=instruction if instruction is not None else INVALID_OPCODE,
            program_counter=pc,
            total_gas_used=total_gas_used,
            jump=contract.jump_at(pc) if contract else JumpType.NONE,
            source_code=contract.source_code_at(pc) if contract else "",
        ))

    return steps


def call_trace_nodes(call_trace: Dict[str, Any],
                     contract_names: Dict[str, str],
                     signatures: Dict[str, str]) -> List[CallTraceNode]:
    """
    Flatten a nested ``callTracer`` result into a call-trace arena.

    Nodes are numbered in pre-order; ``contract_names`` is keyed by
    checksummed address and ``signatures`` by 4-byte selector.
    """
    nodes: List[CallTraceNode] = []
    stack = [(call_trace, None)]
    while stack:
        call, parent = stack.pop()
        to_addr = call.get('to')
        contract = None
        if to_addr:
            contract = contract_names.get(to_checksum_address(_to_hex(to_addr)))
        selector = _to_hex(call.get('input') or '0x')[:10].lower()

        index = len(nodes)
        nodes.append(CallTraceNode(
            parent=parent,
            gas_used=_to_int(call.get('gasUsed', 0)),
            contract=contract,
            signature=signatures.get(selector),
        ))
        if parent is not None:
            nodes[parent].children.append(index)
        for child in reversed(call.get('calls') or []):
            stack.append((child, index))
    return nodes


def collect_selectors(call_trace: Dict[str, Any]) -> List[str]:
    """All distinct 4-byte selectors called in a ``callTracer`` result."""
    selectors = []
    stack = [call_trace]
    while stack:
        call = stack.pop()
        selector = _to_hex(call.get('input') or '0x')[:10].lower()
        if len(selector) == 10 and selector not in selectors:
            selectors.append(selector)
        stack.extend(call.get('calls') or [])
    return selectors


class TransactionTracer:
    """
    Fetches transaction traces over JSON-RPC and decodes them.
    """

    def __init__(self, rpc_url: str = "http://localhost:8545", quiet_mode: bool = False):
        self.w3 = Web3(Web3.HTTPProvider(rpc_url))
        if not self.w3.is_connected():
            raise ConnectionError(f"Failed to connect to {rpc_url}")
        self.quiet_mode = quiet_mode
        self.function_signatures: Dict[str, str] = {}  # selector -> signature

    def _log(self, message: str):
        """Log a message to stderr if not in quiet mode."""
        if not self.quiet_mode:
            print(message, file=sys.stderr)

    @staticmethod
    def _normalize_hash(tx_hash: str) -> str:
        if isinstance(tx_hash, str) and not tx_hash.startswith('0x'):
            tx_hash = '0x' + tx_hash
        return tx_hash

    def fetch_struct_logs(self, tx_hash: str) -> Dict[str, Any]:
        """Fetch the opcode-level trace and the transaction's entry address."""
        tx_hash = self._normalize_hash(tx_hash)
        tx = self.w3.eth.get_transaction(tx_hash)
        receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        trace_result = self.w3.manager.request_blocking(
            "debug_traceTransaction",
            [tx_hash, {"disableStorage": True, "disableMemory": True, "disableStack": False}]
        )
        struct_logs = list(trace_result.get('structLogs', []))
        self._log(f"Fetched {success(str(len(struct_logs)))} steps for {info(tx_hash)}")
        return {
            'struct_logs': struct_logs,
            # contract creations execute the init code of the new address
            'entry_address': tx.get('to') or receipt.get('contractAddress'),
        }

    def trace_steps(self, tx_hash: str, contracts: Dict[str, ContractSource]) -> List[Step]:
        """Steps of a mined transaction, source-mapped with ``contracts``."""
        result = self.fetch_struct_logs(tx_hash)
        entry_address = result['entry_address']
        if entry_address and to_checksum_address(entry_address) not in contracts:
            self._log(warning(f"No source map for entry contract {entry_address}"))
        return steps_from_struct_logs(result['struct_logs'], contracts, entry_address)

    def fetch_call_trace(self, tx_hash: str) -> Dict[str, Any]:
        """Fetch the nested call trace produced by the node's callTracer."""
        tx_hash = self._normalize_hash(tx_hash)
        result = self.w3.manager.request_blocking(
            "debug_traceTransaction",
            [tx_hash, {"tracer": "callTracer"}]
        )
        return json.loads(Web3.to_json(result))

    def decode_call_trace(self, call_trace: Dict[str, Any], contract_names: Dict[str, str],
                          lookup_signatures: bool = False) -> List[CallTraceNode]:
        """Call-trace arena with names from loaded ABIs and, optionally, 4byte.directory."""
        signatures = dict(self.function_signatures)
        if lookup_signatures:
            for selector in collect_selectors(call_trace):
                if selector not in signatures:
                    signature = self.lookup_function_signature(selector)
                    if signature:
                        signatures[selector] = signature
        return call_trace_nodes(call_trace, contract_names, signatures)

    def format_abi_type(self, abi_input: Dict[str, Any]) -> str:
        """Format ABI type, handling tuples correctly."""
        abi_type = abi_input['type']
        if abi_type.startswith('tuple'):
            components = abi_input.get('components', [])
            component_types = [self.format_abi_type(comp) for comp in components]
            # keep array suffixes such as tuple[] or tuple[2]
            return f"({','.join(component_types)}){abi_type[len('tuple'):]}"
        return abi_type

    def load_abi(self, abi_path: str):
        """Load ABI and extract function signatures."""
        try:
            with open(abi_path, 'r') as f:
                abi = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self._log(warning(f"Warning: Could not load ABI: {e}"))
            return

        for item in abi:
            if item.get('type') == 'function':
                input_types = ','.join(self.format_abi_type(inp) for inp in item.get('inputs', []))
                signature = f"{item['name']}({input_types})"
                # Calculate selector (first 4 bytes of keccak256 hash)
                selector = '0x' + keccak(text=signature)[:4].hex()
                self.function_signatures[selector] = signature

    def lookup_function_signature(self, selector: str) -> Optional[str]:
        """Look up function signature from 4byte.directory."""
        if selector.startswith('0x'):
            selector = selector[2:]
        url = f"https://www.4byte.directory/api/v1/signatures/?hex_signature=0x{selector}"
        try:
            response = requests.get(url, timeout=5)
            if response.status_code == 200:
                data = response.json()
                if data.get('results'):
                    # Return the first (most common) signature
                    return data['results'][0]['text_signature']
        except (requests.RequestException, ValueError) as e:
            self._log(warning(f"Signature lookup failed for 0x{selector}: {e}"))
        return None
