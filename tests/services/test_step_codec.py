"""Unit tests for orgflow.services.step_codec: stored step decoding."""

from __future__ import annotations

import json

from orgflow.schemas.process import ProcessStep
from orgflow.services.step_codec import decode_raw_steps, decode_steps, encode_steps

STORED = [
    {"id": "a", "label": "Start", "type": "start"},
    {"id": "b", "label": "Check", "type": "decision", "yesTargetId": "c", "noTargetId": "a"},
    {"id": "c", "label": "End", "type": "finish"},
]


class TestDecodeRawSteps:
    def test_list(self):
        raw = decode_raw_steps(STORED)
        assert raw.kind == "list"
        assert raw.items == STORED

    def test_encoded_string(self):
        raw = decode_raw_steps(json.dumps(STORED))
        assert raw.kind == "encoded"
        assert raw.items == STORED

    def test_undecodable_string(self):
        raw = decode_raw_steps("{not json")
        assert raw.kind == "invalid"
        assert raw.items == []

    def test_encoded_non_list(self):
        assert decode_raw_steps(json.dumps({"id": "a"})).kind == "invalid"

    def test_other_types(self):
        assert decode_raw_steps(None).kind == "invalid"
        assert decode_raw_steps({"steps": []}).kind == "invalid"


class TestDecodeSteps:
    def test_list_decoded(self):
        steps = decode_steps(STORED)
        assert [s.id for s in steps] == ["a", "b", "c"]
        assert steps[1].yes_target_id == "c"
        assert steps[1].no_target_id == "a"

    def test_string_decoded_identically(self):
        assert decode_steps(json.dumps(STORED)) == decode_steps(STORED)

    def test_empty_list(self):
        assert decode_steps([]) == []

    def test_invalid_type_rejected(self):
        bad = [{"id": "a", "label": "Start", "type": "loop"}]
        assert decode_steps(bad) is None

    def test_missing_id_rejected(self):
        assert decode_steps([{"label": "x", "type": "action"}]) is None

    def test_invalid_raw(self):
        assert decode_steps("nope") is None
        assert decode_steps(12) is None


class TestEncodeSteps:
    def test_uses_camel_case_keys(self):
        encoded = encode_steps(
            [ProcessStep(id="a", label="A", type="action", department_id="d1")]
        )
        assert encoded == [
            {
                "id": "a",
                "label": "A",
                "type": "action",
                "departmentId": "d1",
                "draftDepartmentName": None,
                "roleId": None,
                "draftRoleName": None,
                "yesTargetId": None,
                "noTargetId": None,
            }
        ]
