import pytest

from solflame.name_resolver import (
    extract_after_last_dot,
    extract_after_prefix,
    resolve_any_name,
    resolve_contract_name,
    resolve_function_name,
)


class TestExtractAfterPrefix:
    def test_returns_text_up_to_first_stop(self):
        assert extract_after_prefix("contract Token {", "contract ", (' ', '{')) == "Token"

    def test_stop_character_directly_after_prefix(self):
        assert extract_after_prefix("contract {", "contract ", (' ', '{')) == ""

    def test_prefix_mismatch(self):
        assert extract_after_prefix("library Math {", "contract ", (' ', '{')) is None

    def test_unterminated_scan(self):
        assert extract_after_prefix("contract Token", "contract ", (' ', '{')) is None

    def test_empty_prefix(self):
        assert extract_after_prefix("sha256(data)", "", ('(',)) == "sha256"


class TestExtractAfterLastDot:
    def test_member_call(self):
        assert extract_after_last_dot("a.b.c(x)", ('(',)) == "c"

    def test_stop_before_first_dot_ignored(self):
        assert extract_after_last_dot("uint256(0x00).toField()", ('(',)) == "toField"

    def test_no_dot(self):
        assert extract_after_last_dot("transfer(x)", ('(',)) is None

    def test_no_stop_after_dot(self):
        assert extract_after_last_dot("a.b", ('(',)) is None

    def test_nested_member_argument(self):
        assert extract_after_last_dot("key.hooks.isValidHookAddress(key.fee)", ['(']) == "isValidHookAddress"


def test_resolve_contract_name():
    assert resolve_contract_name("contract Vault is Ownable {") == "Vault"
    assert resolve_contract_name("abstract contract Base {") == "Base"
    assert resolve_contract_name("abstract contract Bar{") == "Bar"
    assert resolve_contract_name("function f() {") is None


def test_resolve_function_name():
    assert resolve_function_name("function transfer(address to) public") == "transfer"
    assert resolve_function_name("function  (") == ""
    assert resolve_function_name("contract A {") is None


@pytest.mark.parametrize("snippet, expected", [
    ("contract A {", "A"),
    ("abstract contract Base {", "Base"),
    ("function deposit() external {", "deposit"),
    ("token.transferFrom(a, b, c)", "transferFrom"),
    ("keccak256(data)", "keccak256"),
    ("keccak256(abi.encode(x))", "encode"),
    ("x = 1;", None),
    ("", None),
])
def test_resolve_any_name(snippet, expected):
    assert resolve_any_name(snippet) == expected
