"""
Color utilities for solflame

Provides ANSI color codes for terminal output of call trees and diagnostics.
"""

import os
import sys


def stream_supports_color(stream) -> bool:
    """True when ANSI codes written to the stream reach a terminal."""
    return (
        hasattr(stream, 'isatty') and stream.isatty() and
        os.environ.get('TERM') != 'dumb' and
        not os.environ.get('NO_COLOR')
    )


# Trees go to stdout and diagnostics to stderr
SUPPORTS_COLOR = stream_supports_color(sys.stdout) and stream_supports_color(sys.stderr)


class Colors:
    """ANSI color codes for terminal output."""

    CYAN = '\033[36m'

    BRIGHT_RED = '\033[91m'
    BRIGHT_GREEN = '\033[92m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'
    BRIGHT_MAGENTA = '\033[95m'
    BRIGHT_CYAN = '\033[96m'

    BOLD = '\033[1m'

    RESET = '\033[0m'

    @classmethod
    def disable(cls):
        """Disable all colors."""
        for attr in dir(cls):
            if not attr.startswith('_') and attr.isupper():
                setattr(cls, attr, '')


# Disable colors if not supported
if not SUPPORTS_COLOR:
    Colors.disable()


# Semantic color functions
def error(text: str) -> str:
    """Format error text."""
    return f"{Colors.BRIGHT_RED}{text}{Colors.RESET}"

def success(text: str) -> str:
    """Format success text."""
    return f"{Colors.BRIGHT_GREEN}{text}{Colors.RESET}"

def warning(text: str) -> str:
    """Format warning text."""
    return f"{Colors.BRIGHT_YELLOW}{text}{Colors.RESET}"

def info(text: str) -> str:
    """Format info text."""
    return f"{Colors.BRIGHT_CYAN}{text}{Colors.RESET}"

def opcode(text: str) -> str:
    """Format EVM opcode."""
    return f"{Colors.BRIGHT_BLUE}{text}{Colors.RESET}"

def gas_value(gas: int) -> str:
    """Format a gas amount."""
    return f"{Colors.BRIGHT_GREEN}{gas}{Colors.RESET}"

def frame_title(title: str, kind: str) -> str:
    """Format a call frame title according to how the frame was opened."""
    if kind == 'external':
        return f"{Colors.BOLD}{Colors.BRIGHT_CYAN}{title}{Colors.RESET}"
    if kind == 'native':
        return f"{Colors.BRIGHT_MAGENTA}{title}{Colors.RESET}"
    if kind == 'opcode':
        return opcode(title)
    return f"{Colors.CYAN}{title}{Colors.RESET}"
