"""Naming oracle contract, retry loop and response merging."""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from unmangle.errors import OracleError

logger = logging.getLogger(__name__)


class _WireModel(BaseModel):
    """Models serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NameCandidate(_WireModel):
    """One proposed name with the oracle's confidence."""

    name: str
    confidence: float = 0.5
    rationale: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> str:
        return str(v).strip() if v is not None else ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Clamp confidence into [0, 1]."""
        if v is None:
            return 0.5
        value = float(v)
        if value != value:  # NaN
            return 0.0
        return min(1.0, max(0.0, value))


class Dossier(_WireModel):
    """Compact description of one binding for the oracle."""

    id: int
    original_name: str
    kind: str
    exported: bool = False
    declaration_snippet: str = ""
    usage_summary: str = ""
    type_hints: list[str] = Field(default_factory=list)


class OracleRequest(_WireModel):
    scope_summary: str
    dossiers: list[Dossier]
    max_candidates: int = 5


class Suggestion(_WireModel):
    id: int
    candidates: list[NameCandidate] = Field(default_factory=list)

    @field_validator("candidates", mode="after")
    @classmethod
    def drop_blank_names(cls, v: list[NameCandidate]) -> list[NameCandidate]:
        return [candidate for candidate in v if candidate.name]


class OracleResponse(_WireModel):
    suggestions: list[Suggestion] = Field(default_factory=list)


class NamingOracle(ABC):
    """Abstract naming oracle.

    Implementations receive a batch of dossiers sharing one scope summary and
    return ranked candidates per dossier id.
    """

    @abstractmethod
    async def suggest(self, request: OracleRequest) -> Union[OracleResponse, dict]:
        """Suggest candidate names for every dossier in the request.

        Args:
            request: The batch to name

        Returns:
            An OracleResponse, or a plain dict in the same shape
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the oracle."""
        return None


_TRANSIENT_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504, 529})
_TRANSIENT_INDICATORS = (
    "error code: 429",
    "status code: 429",
    "too many requests",
    "throttling",
    "rate limit",
    "overloaded",
    "tpm",
    "rpm",
    "timeout",
    "timed out",
    "connection error",
    "connection reset",
    "temporarily unavailable",
    "service unavailable",
    "try again later",
)


def is_transient_error(exc: BaseException) -> bool:
    """Whether an oracle failure is worth retrying.

    Rate limiting, timeouts, dropped connections and malformed payloads are
    transient; anything else (bad credentials, bad request) is not.
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError, ValueError)):
        return True
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int) and status_code in _TRANSIENT_STATUS_CODES:
        return True
    message = str(exc).lower()
    return any(indicator in message for indicator in _TRANSIENT_INDICATORS)


def _extract_retry_after_seconds(exc: BaseException) -> Optional[float]:
    """Try reading Retry-After from SDK exception response headers."""
    response = getattr(exc, "response", None)
    if response is None:
        return None
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    value = headers.get("retry-after") or headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def compute_retry_delay_seconds(exc: BaseException, attempt: int) -> float:
    """Compute exponential backoff with jitter for retries."""
    # Honor provider hint if available.
    retry_after = _extract_retry_after_seconds(exc)
    if retry_after is not None:
        return min(120.0, max(1.0, retry_after))

    # 1.5, 3, 6, 12, 24, 48 (+ jitter)
    base = min(60.0, 1.5 * (2 ** (attempt - 1)))
    jitter = random.uniform(0, 0.8)
    return base + jitter


def _coerce_response(payload: Union[OracleResponse, dict]) -> OracleResponse:
    if isinstance(payload, OracleResponse):
        return payload
    if not isinstance(payload, dict):
        raise ValueError(f"Oracle returned {type(payload).__name__}, expected an object")
    return OracleResponse.model_validate(payload)


async def request_suggestions(
    oracle: NamingOracle,
    request: OracleRequest,
    max_attempts: int = 6,
    timeout: Optional[float] = None,
) -> OracleResponse:
    """Call the oracle, retrying transient failures.

    Args:
        oracle: The naming oracle
        request: The batch to name
        max_attempts: Attempts before giving up
        timeout: Deadline in seconds for the whole call including retries

    Returns:
        The validated OracleResponse

    Raises:
        OracleError: On a non-transient failure, after the retry budget is
            spent, or when the deadline passes
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    last_error: Optional[BaseException] = None
    attempt = 0

    while attempt < max_attempts:
        attempt += 1
        remaining = None
        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break

        try:
            payload = await asyncio.wait_for(oracle.suggest(request), timeout=remaining)
            return _coerce_response(payload)
        except OracleError:
            raise
        except Exception as exc:
            last_error = exc
            if not is_transient_error(exc):
                raise OracleError(f"Naming oracle request failed: {exc}", attempts=attempt) from exc
            if attempt >= max_attempts:
                break
            delay = compute_retry_delay_seconds(exc, attempt)
            if deadline is not None:
                delay = min(delay, max(0.0, deadline - loop.time()))
            logger.warning(
                "Oracle request failed (attempt %d/%d): %s; retrying in %.1fs",
                attempt, max_attempts, exc, delay,
            )
            await asyncio.sleep(delay)

    if last_error is None:
        raise OracleError("Naming oracle deadline passed before a request was made", attempts=attempt)
    raise OracleError(
        f"Naming oracle failed after {attempt} attempts: {last_error}",
        attempts=attempt,
    ) from last_error


def merge_suggestions(
    responses: Iterable[tuple[int, int, OracleResponse]],
    requested_ids: Iterable[int],
) -> dict[int, list[NameCandidate]]:
    """Merge batch responses into one candidate table.

    Responses are applied in (scope id, batch index) order; the first
    suggestion for an id wins. Requested ids with no suggestion map to an
    empty list; ids that were never requested are ignored.

    Args:
        responses: (scope id, batch index, response) triples in any order
        requested_ids: Every dossier id that was sent to the oracle

    Returns:
        Dict from binding id to ranked candidates, ordered by id
    """
    wanted = set(requested_ids)
    merged: dict[int, list[NameCandidate]] = {}
    for _scope_id, _batch_index, response in sorted(responses, key=lambda item: (item[0], item[1])):
        for suggestion in response.suggestions:
            if suggestion.id in wanted and suggestion.id not in merged:
                merged[suggestion.id] = list(suggestion.candidates)

    missing = sorted(wanted - merged.keys())
    if missing:
        logger.debug("Oracle returned no suggestions for %d ids: %s", len(missing), missing[:20])
    for binding_id in missing:
        merged[binding_id] = []
    return {binding_id: merged[binding_id] for binding_id in sorted(merged)}
