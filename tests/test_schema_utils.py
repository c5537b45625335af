# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

from typing import Literal

import pytest

from relaymcp.errors import ErrorTag, ProtocolError
from relaymcp.utils.schema import build_input_schema, compress_schema, validate_arguments


def test_required_and_defaults() -> None:
    def fn(city: str, days: int = 3, units: Literal["c", "f"] = "c") -> str:
        return city

    schema = build_input_schema(fn)
    assert schema["type"] == "object"
    assert schema["required"] == ["city"]
    assert schema["properties"]["days"] == {"type": "integer", "default": 3}
    assert schema["properties"]["units"]["enum"] == ["c", "f"]


def test_skipped_and_variadic_parameters() -> None:
    def injected(ctx, value: int) -> int:
        return value

    def variadic(*args, **kwargs) -> None:
        return None

    assert set(build_input_schema(injected, skip=("ctx",))["properties"]) == {"value"}
    assert build_input_schema(variadic) == {"type": "object"}
    assert build_input_schema(lambda: None) == {"type": "object", "properties": {}}


def test_compress_keeps_property_named_title() -> None:
    schema = {
        "title": "Args",
        "type": "object",
        "properties": {"title": {"title": "Title", "type": "string"}},
        "required": [],
        "additionalProperties": False,
    }
    assert compress_schema(schema) == {"type": "object", "properties": {"title": {"type": "string"}}}


def test_validate_arguments_reports_path() -> None:
    schema = {"type": "object", "properties": {"n": {"type": "integer"}}, "required": ["n"]}
    validate_arguments(schema, {"n": 1}, subject="tool 't'")

    with pytest.raises(ProtocolError) as excinfo:
        validate_arguments(schema, {"n": "one"}, subject="tool 't'")
    assert excinfo.value.tag is ErrorTag.INVALID_PARAMS
    assert excinfo.value.data == {"path": "n"}

    with pytest.raises(ProtocolError) as missing:
        validate_arguments(schema, {}, subject="tool 't'")
    assert "'n' is a required property" in missing.value.message
