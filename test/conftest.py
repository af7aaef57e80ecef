import pytest

from solflame.colors import Colors
from solflame.opcodes import CALL, RETURN, STOP
from solflame.step import JumpType, Step

Colors.disable()


def make_step(instruction, gas, source="", jump=JumpType.NONE, pc=0):
    return Step(
        instruction=instruction,
        program_counter=pc,
        total_gas_used=gas,
        jump=jump,
        source_code=source,
    )


@pytest.fixture
def nested_steps():
    """A calls internal function f, which calls contract B; one step closes f and A."""
    return [
        make_step(0x60, 0, "contract A {\n    function f() public {}\n}"),
        make_step(0x56, 10, "function f() public {\n    b.g();\n}", JumpType.IN, pc=2),
        make_step(CALL, 20, "b.g()", pc=3),
        make_step(RETURN, 35, "contract B {\n    function g() external {}\n}"),
        make_step(RETURN, 50, "function f() public {\n    b.g();\n}", JumpType.OUT, pc=4),
    ]


@pytest.fixture
def native_steps():
    return [
        make_step(0x60, 0, "contract A {}"),
        make_step(CALL, 5, "sha256(data)", pc=2),
        make_step(STOP, 8, "", pc=3),
    ]
