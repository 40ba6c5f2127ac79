"""Pytest configuration and fixtures."""

from typing import Optional

import pytest

from unmangle.config import Config
from unmangle.core.oracle import (
    NameCandidate,
    NamingOracle,
    OracleRequest,
    OracleResponse,
    Suggestion,
)


class StubOracle(NamingOracle):
    """Deterministic oracle answering from a table keyed by original name.

    Values are lists of names or (name, confidence) pairs.
    """

    def __init__(self, names: Optional[dict] = None):
        self.names = names or {}
        self.requests: list[OracleRequest] = []
        self.closed = False

    async def suggest(self, request: OracleRequest) -> OracleResponse:
        self.requests.append(request)
        suggestions = []
        for dossier in request.dossiers:
            candidates = []
            for entry in self.names.get(dossier.original_name, []):
                if isinstance(entry, tuple):
                    candidates.append(NameCandidate(name=entry[0], confidence=entry[1]))
                else:
                    candidates.append(NameCandidate(name=entry, confidence=0.9))
            suggestions.append(Suggestion(id=dossier.id, candidates=candidates))
        return OracleResponse(suggestions=suggestions)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_oracle():
    """Return a factory for stub oracles."""
    return StubOracle


@pytest.fixture
def config() -> Config:
    """Return a configuration that never touches the network."""
    return Config(
        llm_api_key="test-key",
        llm_concurrency=2,
        oracle_max_attempts=3,
        oracle_timeout_seconds=5.0,
        min_confidence=0.0,
        max_validation_retries=2,
    )


@pytest.fixture
def simple_code() -> str:
    """Return simple JavaScript code for testing."""
    return """
var a = 1;
var b = 2;
function c(d, e) {
    return d + e;
}
var f = c(a, b);
"""


@pytest.fixture
def nested_scope_code() -> str:
    """Return code with nested scopes for testing."""
    return """
var outer = "value";

function process(data) {
    var temp = data.split("");
    return function transform(item) {
        var result = item.toUpperCase();
        return result;
    };
}

class Calculator {
    constructor(a, b) {
        this.x = a;
        this.y = b;
    }

    add() {
        return this.x + this.y;
    }
}
"""


@pytest.fixture
def minified_module() -> str:
    """Return a small minified-looking ES module."""
    return (
        'import { h as r } from "./dom";\n'
        "const t = { a: 1 };\n"
        "function n(e, o) {\n"
        "  const i = e.map((s) => s * 2);\n"
        "  return { i, o };\n"
        "}\n"
        "export function u(l) {\n"
        "  return r(n(l, t));\n"
        "}\n"
    )
