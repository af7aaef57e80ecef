"""
EVM opcode table

Numbers and mnemonics of the EVM instruction set. The call-tree builder only
needs the call and frame-exit opcodes; the full table is used to label opcode
frames and to turn struct-log mnemonics back into instruction numbers.
"""

from typing import Optional

STOP = 0x00
CALL = 0xf1
RETURN = 0xf3
STATICCALL = 0xfa
REVERT = 0xfd
INVALID_OPCODE = 0xfe

# Opcodes that open a frame the builder follows
CALL_OPCODES = (CALL, STATICCALL)
# Opcodes that terminate the executing VM frame
EXIT_OPCODES = (RETURN, REVERT, STOP)

OPCODES = {
    0x00: "STOP",
    0x01: "ADD",
    0x02: "MUL",
    0x03: "SUB",
    0x04: "DIV",
    0x05: "SDIV",
    0x06: "MOD",
    0x07: "SMOD",
    0x08: "ADDMOD",
    0x09: "MULMOD",
    0x0a: "EXP",
    0x0b: "SIGNEXTEND",
    0x10: "LT",
    0x11: "GT",
    0x12: "SLT",
    0x13: "SGT",
    0x14: "EQ",
    0x15: "ISZERO",
    0x16: "AND",
    0x17: "OR",
    0x18: "XOR",
    0x19: "NOT",
    0x1a: "BYTE",
    0x1b: "SHL",
    0x1c: "SHR",
    0x1d: "SAR",
    0x20: "KECCAK256",
    0x30: "ADDRESS",
    0x31: "BALANCE",
    0x32: "ORIGIN",
    0x33: "CALLER",
    0x34: "CALLVALUE",
    0x35: "CALLDATALOAD",
    0x36: "CALLDATASIZE",
    0x37: "CALLDATACOPY",
    0x38: "CODESIZE",
    0x39: "CODECOPY",
    0x3a: "GASPRICE",
    0x3b: "EXTCODESIZE",
    0x3c: "EXTCODECOPY",
    0x3d: "RETURNDATASIZE",
    0x3e: "RETURNDATACOPY",
    0x3f: "EXTCODEHASH",
    0x40: "BLOCKHASH",
    0x41: "COINBASE",
    0x42: "TIMESTAMP",
    0x43: "NUMBER",
    0x44: "PREVRANDAO",
    0x45: "GASLIMIT",
    0x46: "CHAINID",
    0x47: "SELFBALANCE",
    0x48: "BASEFEE",
    0x49: "BLOBHASH",
    0x4a: "BLOBBASEFEE",
    0x50: "POP",
    0x51: "MLOAD",
    0x52: "MSTORE",
    0x53: "MSTORE8",
    0x54: "SLOAD",
    0x55: "SSTORE",
    0x56: "JUMP",
    0x57: "JUMPI",
    0x58: "PC",
    0x59: "MSIZE",
    0x5a: "GAS",
    0x5b: "JUMPDEST",
    0x5c: "TLOAD",
    0x5d: "TSTORE",
    0x5e: "MCOPY",
    0x5f: "PUSH0",
    0xf0: "CREATE",
    0xf1: "CALL",
    0xf2: "CALLCODE",
    0xf3: "RETURN",
    0xf4: "DELEGATECALL",
    0xf5: "CREATE2",
    0xfa: "STATICCALL",
    0xfd: "REVERT",
    0xfe: "INVALID",
    0xff: "SELFDESTRUCT",
}

# PUSH, DUP, SWAP and LOG families
for i in range(1, 33):
    OPCODES[0x60 + i - 1] = f"PUSH{i}"
for i in range(1, 17):
    OPCODES[0x80 + i - 1] = f"DUP{i}"
    OPCODES[0x90 + i - 1] = f"SWAP{i}"
for i in range(0, 5):
    OPCODES[0xa0 + i] = f"LOG{i}"

OPCODE_NUMBERS = {name: value for value, name in OPCODES.items()}
# Names older clients still report
OPCODE_NUMBERS.update({"SHA3": 0x20, "DIFFICULTY": 0x44, "SUICIDE": 0xff})


def opcode_name(instruction: int) -> str:
    """Mnemonic for an instruction number."""
    return OPCODES.get(instruction, f"UNKNOWN_0x{instruction:02x}")


def opcode_number(name: str) -> Optional[int]:
    """Instruction number for a mnemonic, or None if it is not an EVM opcode."""
    return OPCODE_NUMBERS.get(name.upper())


def push_size(instruction: int) -> int:
    """Number of immediate bytes following a PUSH instruction."""
    if 0x60 <= instruction <= 0x7f:
        return instruction - 0x5f
    return 0
