import json

from hexbytes import HexBytes

from solflame.call_tree import CallTree, build_call_tree
from solflame.folding import CallTraceNode
from solflame.json_serializer import TreeSerializer
from solflame.step import steps_from_json


def test_serialize_tree(nested_steps):
    data = TreeSerializer().serialize_tree(build_call_tree(nested_steps))
    assert data["title"] == "A.fallback"
    assert data["kind"] == "external"
    assert (data["gas_start"], data["gas_end"], data["gas_used"], data["self_gas"]) == (0, 50, 50, 10)

    f = data["children"][0]
    assert f["name"] == "f"
    assert f["kind"] == "internal"
    assert (f["gas_used"], f["self_gas"]) == (40, 25)

    b = f["children"][0]
    assert b["title"] == "B.fallback"
    assert b["children"] == []


def test_serialize_empty_tree():
    assert TreeSerializer().serialize_tree(CallTree()) == {}


def test_serialize_steps_is_loadable(nested_steps):
    serializer = TreeSerializer()
    document = json.loads(serializer.to_json(serializer.serialize_steps(nested_steps)))
    assert steps_from_json(document) == nested_steps


def test_serialize_call_trace():
    nodes = [
        CallTraceNode(parent=None, gas_used=10, children=[1], contract="A", signature="f()"),
        CallTraceNode(parent=0, gas_used=4),
    ]
    data = TreeSerializer().serialize_call_trace(nodes)
    assert data[0]["display"] == "A.f()"
    assert data[1] == {
        "index": 1,
        "parent": 0,
        "children": [],
        "contract": None,
        "signature": None,
        "display": "<unknown-contract>.<unknown-function>",
        "gas_used": 4,
    }


def test_bytes_are_hex_encoded():
    text = TreeSerializer().to_json({"input": HexBytes("0xa9059cbb"), "raw": [b"\x01\x02"]})
    assert json.loads(text) == {"input": "0xa9059cbb", "raw": ["0x0102"]}
