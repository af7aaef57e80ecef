"""
Name resolution heuristics for source snippets

Recovers contract, function and call-target names from the raw slice of
Solidity source that a program counter maps to. Snippets are cut at arbitrary
offsets; every function here returns None when nothing recognizable is found.
"""

from typing import Iterable, Optional


def extract_after_prefix(snippet: str, prefix: str, stop_chars: Iterable[str]) -> Optional[str]:
    """
    Return the text between ``prefix`` and the first stop character.

    Returns None when the snippet does not start with ``prefix`` or when the
    scan reaches the end of the snippet without meeting a stop character.
    """
    if not snippet.startswith(prefix):
        return None
    stops = set(stop_chars)
    start = len(prefix)
    for end in range(start, len(snippet)):
        if snippet[end] in stops:
            return snippet[start:end]
    return None


def extract_after_last_dot(snippet: str, stop_chars: Iterable[str]) -> Optional[str]:
    """
    Return the member name called in an expression such as ``a.b.c(x)``.

    Stop characters seen before the first dot are ignored, so
    ``uint256(0x00).toField()`` yields ``toField``. The scan ends at the first
    stop character following a dot.
    """
    stops = set(stop_chars)
    start = None
    for end, char in enumerate(snippet):
        if char == '.':
            start = end + 1
        if start is not None and char in stops:
            return snippet[start:end]
    return None


def resolve_contract_name(snippet: str) -> Optional[str]:
    """Name of the contract whose definition starts the snippet."""
    name = extract_after_prefix(snippet, "contract ", (' ', '{'))
    if name is None:
        name = extract_after_prefix(snippet, "abstract contract ", (' ', '{'))
    return name


def resolve_function_name(snippet: str) -> Optional[str]:
    """Name of the function whose definition starts the snippet."""
    return extract_after_prefix(snippet, "function ", (' ', '('))


def resolve_any_name(snippet: str) -> Optional[str]:
    """Best-guess identifier for a snippet, trying the heuristics in order."""
    for resolve in (
        lambda s: extract_after_prefix(s, "contract ", (' ', '{')),
        lambda s: extract_after_prefix(s, "abstract contract ", (' ', '{')),
        resolve_function_name,
        lambda s: extract_after_last_dot(s, ('(',)),
        lambda s: extract_after_prefix(s, "", ('(',)),
    ):
        name = resolve(snippet)
        if name is not None:
            return name
    return None
