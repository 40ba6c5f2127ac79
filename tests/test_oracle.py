"""Tests for the naming oracle contract and retry loop."""

import asyncio
from types import SimpleNamespace

import pytest

from unmangle.core import oracle as oracle_module
from unmangle.core.oracle import (
    NameCandidate,
    NamingOracle,
    OracleRequest,
    OracleResponse,
    Suggestion,
    compute_retry_delay_seconds,
    is_transient_error,
    merge_suggestions,
    request_suggestions,
)
from unmangle.errors import OracleError


class ScriptedOracle(NamingOracle):
    """Oracle that raises or returns the scripted outcomes in order."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def suggest(self, request):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class SlowOracle(NamingOracle):
    async def suggest(self, request):
        await asyncio.sleep(10)
        return OracleResponse()


@pytest.fixture
def request_():
    return OracleRequest(scope_summary="// Program", dossiers=[])


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(oracle_module, "compute_retry_delay_seconds", lambda exc, attempt: 0.0)


class TestWireModels:
    """Tests for request/response models."""

    def test_confidence_is_clamped(self):
        """Confidence outside [0, 1] is clamped."""
        assert NameCandidate(name="a", confidence=1.7).confidence == 1.0
        assert NameCandidate(name="a", confidence=-3).confidence == 0.0
        assert NameCandidate(name="a", confidence=None).confidence == 0.5
        assert NameCandidate(name="a", confidence=float("nan")).confidence == 0.0

    def test_names_are_stripped(self):
        """Whitespace around names is removed."""
        assert NameCandidate(name="  count ").name == "count"

    def test_blank_candidates_are_dropped(self):
        """Empty names never reach the solver."""
        suggestion = Suggestion(id=1, candidates=[{"name": " "}, {"name": "total"}])

        assert [c.name for c in suggestion.candidates] == ["total"]

    def test_camel_case_wire_format(self):
        """Responses parse from camelCase JSON."""
        response = OracleResponse.model_validate({
            "suggestions": [{"id": 3, "candidates": [{"name": "user", "confidence": 0.8}]}]
        })

        assert response.suggestions[0].id == 3
        assert response.suggestions[0].candidates[0].name == "user"

        request = OracleRequest(scope_summary="s", dossiers=[], max_candidates=2)
        assert request.model_dump(by_alias=True) == {"scopeSummary": "s", "dossiers": [], "maxCandidates": 2}


class TestTransientErrors:
    """Tests for retry classification."""

    def test_rate_limit_message(self):
        """429 throttling is transient."""
        err = Exception("Error code: 429 - {'message': 'Throttling: TPM'}")
        assert is_transient_error(err) is True

    def test_status_code_attribute(self):
        """SDK errors with a 5xx status are transient."""
        err = Exception("server exploded")
        err.status_code = 503
        assert is_transient_error(err) is True

    def test_timeouts_and_malformed_payloads(self):
        """Timeouts and unparseable answers are transient."""
        assert is_transient_error(asyncio.TimeoutError()) is True
        assert is_transient_error(ValueError("Could not extract valid JSON")) is True

    def test_auth_failure_is_permanent(self):
        """Bad credentials are not retried."""
        err = Exception("Error code: 401 - invalid api key")
        err.status_code = 401
        assert is_transient_error(err) is False

    def test_retry_after_header(self):
        """A Retry-After header overrides the backoff schedule."""
        err = Exception("slow down")
        err.response = SimpleNamespace(headers={"retry-after": "7"})

        assert compute_retry_delay_seconds(err, 1) == 7.0

    def test_backoff_grows(self):
        """Backoff doubles per attempt."""
        err = Exception("x")
        first = compute_retry_delay_seconds(err, 1)
        third = compute_retry_delay_seconds(err, 3)

        assert 1.5 <= first < 2.5
        assert 6.0 <= third < 7.0


class TestRequestSuggestions:
    """Tests for request_suggestions."""

    @pytest.mark.asyncio
    async def test_returns_response(self, request_):
        """A healthy oracle is called once."""
        oracle = ScriptedOracle([OracleResponse()])

        response = await request_suggestions(oracle, request_)

        assert isinstance(response, OracleResponse)
        assert oracle.calls == 1

    @pytest.mark.asyncio
    async def test_accepts_plain_dict(self, request_):
        """Dict answers are validated into a response."""
        oracle = ScriptedOracle([{"suggestions": [{"id": 0, "candidates": [{"name": "x"}]}]}])

        response = await request_suggestions(oracle, request_)

        assert response.suggestions[0].candidates[0].name == "x"

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, request_, no_backoff):
        """Transient errors are retried until success."""
        oracle = ScriptedOracle([
            Exception("Error code: 429 - rate limit"),
            ValueError("Could not extract valid JSON"),
            OracleResponse(),
        ])

        await request_suggestions(oracle, request_, max_attempts=3)

        assert oracle.calls == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, request_, no_backoff):
        """The retry budget is bounded."""
        oracle = ScriptedOracle([TimeoutError("timed out")] * 5)

        with pytest.raises(OracleError) as exc_info:
            await request_suggestions(oracle, request_, max_attempts=2)

        assert oracle.calls == 2
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(self, request_, no_backoff):
        """Non-transient errors fail immediately."""
        err = Exception("forbidden")
        err.status_code = 403
        oracle = ScriptedOracle([err, OracleResponse()])

        with pytest.raises(OracleError):
            await request_suggestions(oracle, request_, max_attempts=5)

        assert oracle.calls == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_is_retried(self, request_, no_backoff):
        """A payload that fails validation counts as transient."""
        oracle = ScriptedOracle([["not", "an", "object"], OracleResponse()])

        await request_suggestions(oracle, request_, max_attempts=2)

        assert oracle.calls == 2

    @pytest.mark.asyncio
    async def test_deadline(self, request_):
        """A hung oracle is bounded by the overall timeout."""
        with pytest.raises(OracleError):
            await request_suggestions(SlowOracle(), request_, max_attempts=1, timeout=0.05)


class TestMergeSuggestions:
    """Tests for merge_suggestions."""

    def _response(self, *pairs):
        return OracleResponse(suggestions=[
            Suggestion(id=binding_id, candidates=[NameCandidate(name=name)])
            for binding_id, name in pairs
        ])

    def test_missing_ids_map_to_empty(self):
        """Requested ids without suggestions get an empty list."""
        merged = merge_suggestions([(0, 0, self._response((1, "one")))], [1, 2])

        assert [c.name for c in merged[1]] == ["one"]
        assert merged[2] == []

    def test_unrequested_ids_are_ignored(self):
        """Suggestions for ids never sent are dropped."""
        merged = merge_suggestions([(0, 0, self._response((1, "one"), (9, "nine")))], [1])

        assert list(merged) == [1]

    def test_merge_order_is_deterministic(self):
        """The first response in (scope, batch) order wins regardless of arrival."""
        late = (2, 0, self._response((5, "fromScopeTwo")))
        early = (0, 1, self._response((5, "fromScopeZero")))

        merged_a = merge_suggestions([late, early], [5])
        merged_b = merge_suggestions([early, late], [5])

        assert merged_a == merged_b
        assert merged_a[5][0].name == "fromScopeZero"
