# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

import pytest

from relaymcp.resource_template import ResourceTemplateSpec, UriTemplate, extract_resource_template_spec, resource_template
from relaymcp.server import MCPServer


def test_match_extracts_and_decodes_values() -> None:
    template = UriTemplate("users://{user}/files/{name}")
    assert template.parameters == ("user", "name")
    assert template.match("users://alice/files/a%20b.txt") == {"user": "alice", "name": "a b.txt"}


def test_match_rejects_extra_segments() -> None:
    template = UriTemplate("greeting://{name}")
    assert template.match("greeting://a/b") is None
    assert template.match("greeting://") is None
    assert template.match("other://a") is None


def test_expand_round_trips_reserved_characters() -> None:
    template = UriTemplate("greeting://{name}")
    uri = template.expand(name="a/b")
    assert uri == "greeting://a%2Fb"
    assert template.match(uri) == {"name": "a/b"}
    with pytest.raises(KeyError):
        template.expand()


def test_duplicate_placeholders_are_rejected() -> None:
    with pytest.raises(ValueError):
        UriTemplate("x://{a}/{a}")


def test_binding_registers_templates() -> None:
    server = MCPServer("templates")

    with server.binding():

        @resource_template("greeting://{name}", name="greeting")
        def greeting(name: str) -> str:
            return name

    spec = extract_resource_template_spec(greeting)
    assert isinstance(spec, ResourceTemplateSpec)
    assert spec.definition().uriTemplate == "greeting://{name}"
    assert server.resources.exists("greeting://Alice")
    assert not server.resources.exists("farewell://Alice")
