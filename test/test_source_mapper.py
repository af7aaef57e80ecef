import json

import pytest

from solflame.source_mapper import (
    ContractSource,
    SourceElement,
    SourceMapError,
    build_pc_ic_map,
    load_contract_artifact,
    load_contract_names,
    load_contracts_mapping,
    parse_source_map,
)
from solflame.step import JumpType

ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
CHECKSUM_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
SOURCE = "contract A { function f() {} }"


def test_parse_source_map_inherits_empty_fields():
    assert parse_source_map("0:30:0:-;13:15::i;;:::o;1:2:0:-:0") == [
        SourceElement(0, 30, 0, JumpType.NONE),
        SourceElement(13, 15, 0, JumpType.IN),
        SourceElement(13, 15, 0, JumpType.IN),
        SourceElement(13, 15, 0, JumpType.OUT),
        SourceElement(1, 2, 0, JumpType.NONE),
    ]


def test_parse_source_map_defaults():
    assert parse_source_map("") == []
    assert parse_source_map("4:2") == [SourceElement(4, 2, -1, JumpType.NONE)]


def test_parse_source_map_invalid():
    with pytest.raises(SourceMapError):
        parse_source_map("0:x:0:-")


def test_build_pc_ic_map_skips_push_data():
    # PUSH1 01 PUSH2 0002 ADD
    assert build_pc_ic_map("0x600161000201") == {0: 0, 2: 1, 5: 2}
    assert build_pc_ic_map("6001") == {0: 0}
    assert build_pc_ic_map("") == {}


@pytest.fixture
def contract():
    # PUSH1 01 PUSH1 02 STOP
    return ContractSource(
        name="A",
        address=ADDRESS,
        bytecode="600160020000",
        source_map="0:30:0:-;13:15:0:i;-1:-1:-1:-",
        sources={0: SOURCE.encode()},
    )


def test_contract_source(contract):
    assert contract.address == CHECKSUM_ADDRESS
    assert contract.source_code_at(0) == SOURCE
    assert contract.source_code_at(2) == "function f() {}"
    assert contract.jump_at(2) == JumpType.IN
    # inside PUSH data
    assert contract.source_code_at(1) == ""
    assert contract.element_at(1) is None
    # compiler generated code
    assert contract.source_code_at(4) == ""
    # no source map entry left
    assert contract.source_code_at(5) == ""
    assert contract.jump_at(5) == JumpType.NONE


def write_project(tmp_path):
    build = tmp_path / "build"
    build.mkdir()
    (build / "A.sol").write_text(SOURCE)
    (build / "combined.json").write_text(json.dumps({
        "contracts": {
            "A.sol:A": {"bin-runtime": "60016002", "srcmap-runtime": "0:30:0:-;13:15:0:i"},
            "A.sol:Lib": {"bin-runtime": "00"},
        },
        "sourceList": ["A.sol"],
    }))
    mapping = tmp_path / "contracts.json"
    mapping.write_text(json.dumps({
        "contracts": [{"address": ADDRESS, "name": "A", "artifact": "build/combined.json"}],
    }))
    return build / "combined.json", mapping


def test_load_contract_artifact(tmp_path):
    artifact, _ = write_project(tmp_path)
    contract = load_contract_artifact(artifact, "A")
    assert contract.address is None
    assert contract.source_code_at(2) == "function f() {}"


def test_load_contract_artifact_errors(tmp_path):
    artifact, _ = write_project(tmp_path)
    with pytest.raises(SourceMapError, match="not found"):
        load_contract_artifact(artifact, "Missing")
    with pytest.raises(SourceMapError, match="srcmap-runtime"):
        load_contract_artifact(artifact, "Lib")
    with pytest.raises(FileNotFoundError):
        load_contract_artifact(tmp_path / "nope.json", "A")


def test_load_contracts_mapping(tmp_path):
    _, mapping = write_project(tmp_path)
    contracts = load_contracts_mapping(mapping)
    assert list(contracts) == [CHECKSUM_ADDRESS]
    assert contracts[CHECKSUM_ADDRESS].name == "A"
    assert load_contract_names(mapping) == {CHECKSUM_ADDRESS: "A"}


def test_load_contracts_mapping_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_contracts_mapping(tmp_path / "contracts.json")


@pytest.mark.parametrize("entry, missing", [
    ({"name": "A", "artifact": "build/combined.json"}, "address"),
    ({"address": ADDRESS, "artifact": "build/combined.json"}, "name"),
    ({"address": ADDRESS, "name": "A"}, "artifact"),
])
def test_load_contracts_mapping_incomplete_entry(tmp_path, entry, missing):
    mapping = tmp_path / "contracts.json"
    mapping.write_text(json.dumps({"contracts": [entry]}))
    with pytest.raises(SourceMapError, match=f"contract entry 0 has no '{missing}'"):
        load_contracts_mapping(mapping)


def test_load_contract_names_needs_no_artifact(tmp_path):
    mapping = tmp_path / "contracts.json"
    mapping.write_text(json.dumps({"contracts": [{"address": ADDRESS, "name": "A"}]}))
    assert load_contract_names(mapping) == {CHECKSUM_ADDRESS: "A"}

    mapping.write_text(json.dumps({"contracts": [{"name": "A"}]}))
    with pytest.raises(SourceMapError, match="has no 'address'"):
        load_contract_names(mapping)


def test_load_contracts_mapping_not_a_list(tmp_path):
    mapping = tmp_path / "contracts.json"
    mapping.write_text(json.dumps({"contracts": {"A": ADDRESS}}))
    with pytest.raises(SourceMapError, match="must be an array"):
        load_contracts_mapping(mapping)
