"""Renaming pipeline: analyze, ask the oracle, solve, rewrite, validate."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from unmangle.config import Config
from unmangle.core.dossier import build_naming_batches
from unmangle.core.generator import generate_code
from unmangle.core.oracle import NameCandidate, NamingOracle, merge_suggestions, request_suggestions
from unmangle.core.scope_builder import analyze_source
from unmangle.core.solver import NameAssignment, solve_names
from unmangle.core.symbols import AnalysisResult
from unmangle.core.validator import ValidationBaseline, ValidationResult, validate_code
from unmangle.errors import ValidationFailure

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class RenameOutcome:
    """A validated rewrite and how it was reached."""
    code: str
    assignment: NameAssignment
    validation: ValidationResult
    analysis: AnalysisResult


async def collect_candidates(
    analysis: AnalysisResult,
    oracle: NamingOracle,
    config: Config,
    on_progress: Optional[ProgressCallback] = None,
) -> dict[int, list[NameCandidate]]:
    """Query the oracle for every naming batch of an analysis.

    Batches run concurrently, at most ``config.llm_concurrency`` at a time.
    If any batch fails for good, the remaining ones are cancelled and the
    error propagates.

    Args:
        analysis: Result of the scope graph builder
        oracle: The naming oracle
        config: Configuration
        on_progress: Called with (finished batches, total batches)

    Returns:
        Candidates keyed by binding id, merged in scope order
    """
    batches = build_naming_batches(
        analysis,
        max_symbols_per_batch=config.max_symbols_per_batch,
        max_scope_summary_chars=config.max_scope_summary_chars,
        skip_descriptive_names=config.skip_descriptive_names,
    )
    if not batches:
        return {}

    semaphore = asyncio.Semaphore(config.llm_concurrency)
    finished = 0

    async def run(batch):
        nonlocal finished
        async with semaphore:
            response = await request_suggestions(
                oracle,
                batch.to_request(config.max_candidates),
                max_attempts=config.oracle_max_attempts,
                timeout=config.oracle_timeout_seconds,
            )
        finished += 1
        if on_progress is not None:
            on_progress(finished, len(batches))
        return batch.scope_id, batch.index, response

    logger.debug("Sending %d batches to the naming oracle", len(batches))
    tasks = [asyncio.ensure_future(run(batch)) for batch in batches]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    requested = [binding_id for batch in batches for binding_id in batch.binding_ids]
    return merge_suggestions(results, requested)


def _implicated_bindings(assignment: NameAssignment, validation: ValidationResult) -> set[int]:
    names = validation.implicated_names
    return {
        decision.binding_id for decision in assignment.decisions
        if decision.new_name in names or decision.original_name in names
    }


def solve_and_validate(
    analysis: AnalysisResult,
    candidates: dict[int, list[NameCandidate]],
    config: Config,
) -> RenameOutcome:
    """Solve, rewrite and validate, narrowing the assignment on failure.

    Bindings implicated by a failed validation are pinned to their original
    names and the solver runs again, up to ``config.max_validation_retries``
    times.

    Raises:
        ValidationFailure: If no attempt produced a valid rewrite
    """
    baseline = ValidationBaseline.from_analysis(analysis)
    pinned: set[int] = set()
    validation: Optional[ValidationResult] = None

    for attempt in range(config.max_validation_retries + 1):
        assignment = solve_names(
            analysis,
            candidates,
            min_confidence=config.min_confidence,
            enforce_naming_conventions=config.enforce_naming_conventions,
            pinned=pinned,
        )
        code = generate_code(analysis, assignment)
        validation = validate_code(
            code,
            baseline=baseline,
            decisions=assignment.decisions,
            low_confidence_threshold=config.low_confidence_threshold,
        )
        if validation.valid:
            logger.debug(
                "Rewrite valid after %d attempt(s): %d renamed, %d kept",
                attempt + 1, len(assignment.decisions), len(assignment.fallbacks),
            )
            return RenameOutcome(code=code, assignment=assignment, validation=validation, analysis=analysis)

        implicated = _implicated_bindings(assignment, validation) - pinned
        if not implicated:
            implicated = {decision.binding_id for decision in assignment.decisions}
        logger.warning(
            "Rewrite failed validation (%d errors); pinning %d bindings and retrying",
            len(validation.errors), len(implicated),
        )
        pinned |= implicated

    raise ValidationFailure(validation)


async def rename_identifiers(
    source_code: str,
    oracle: NamingOracle,
    config: Optional[Config] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> RenameOutcome:
    """Rename the identifiers of one JavaScript source.

    Args:
        source_code: The JavaScript source code
        oracle: The naming oracle
        config: Configuration (defaults to Config())
        on_progress: Called with (finished batches, total batches)

    Returns:
        RenameOutcome holding validated code

    Raises:
        ParseError: If the source is not valid JavaScript
        OracleError: If the oracle kept failing
        ValidationFailure: If no valid rewrite could be produced
    """
    config = config or Config()
    analysis = await asyncio.to_thread(
        analyze_source, source_code, config.context_lines, config.max_snippet_chars,
    )
    logger.debug(
        "Analysis: %d scopes, %d bindings, dynamic=%s",
        len(analysis.scopes), len(analysis.bindings), analysis.has_dynamic_features,
    )
    candidates = await collect_candidates(analysis, oracle, config, on_progress)
    return await asyncio.to_thread(solve_and_validate, analysis, candidates, config)


async def rename_many(
    sources: Sequence[str],
    oracle: NamingOracle,
    config: Optional[Config] = None,
    return_exceptions: bool = False,
) -> list:
    """Rename several independent sources concurrently.

    Args:
        sources: JavaScript sources
        oracle: The naming oracle shared by all sources
        config: Configuration (defaults to Config())
        return_exceptions: Put per-source errors in the result list instead
            of raising the first one

    Returns:
        One RenameOutcome (or exception) per source, in input order
    """
    config = config or Config()
    semaphore = asyncio.Semaphore(config.file_concurrency)

    async def run(source_code: str) -> RenameOutcome:
        async with semaphore:
            return await rename_identifiers(source_code, oracle, config)

    return await asyncio.gather(*(run(source) for source in sources), return_exceptions=return_exceptions)
