"""CLI interface for unmangle."""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from unmangle import __version__
from unmangle.config import Config, LLMProvider
from unmangle.core.dossier import scopes_by_significance
from unmangle.core.scope_builder import analyze_source
from unmangle.core.validator import ValidationBaseline, validate_code
from unmangle.core.oracle import NamingOracle
from unmangle.engine import rename_identifiers
from unmangle.errors import UnmangleError, ValidationFailure
from unmangle.llm import create_naming_oracle

console = Console()

# Debug logger
debug_logger = None
debug_log_file = None


def setup_debug_logger(log_path: Optional[Path] = None) -> logging.Logger:
    """Setup debug logger for detailed logging.

    The file handler also receives everything the library modules log.
    """
    global debug_logger, debug_log_file

    if log_path is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = Path(f"unmangle_debug_{timestamp}.log")

    debug_log_file = log_path

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    fh.setFormatter(formatter)

    logger = logging.getLogger("unmangle_debug")
    logger.setLevel(logging.DEBUG)
    logger.handlers = [fh]

    library_logger = logging.getLogger("unmangle")
    library_logger.setLevel(logging.DEBUG)
    library_logger.handlers = [fh]

    debug_logger = logger
    return logger


def debug_log(level: str, message: str, data: dict = None):
    """Log debug message with optional structured data."""
    if debug_logger is None:
        return

    log_func = getattr(debug_logger, level.lower(), debug_logger.info)

    if data:
        data_str = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        log_func(f"{message}\n{data_str}")
    else:
        log_func(message)


async def process_file(
    file_path: Path,
    config: Config,
    oracle: NamingOracle,
    output_path: Optional[Path] = None,
) -> dict:
    """Rename the identifiers of a single JavaScript file.

    Args:
        file_path: Path to JavaScript file
        config: Configuration
        oracle: Naming oracle to query
        output_path: Optional output path

    Returns:
        Processing statistics
    """
    stats = {"file": str(file_path), "bindings": 0, "renamed": 0, "kept": 0, "warnings": 0}
    source_code = file_path.read_text(encoding="utf-8")
    console.print(f"[blue]Processing[/blue] {file_path}")
    debug_log("info", f"Processing file: {file_path}", {"chars": len(source_code)})

    pbar = tqdm(total=0, desc=file_path.name, unit="batch", leave=False)

    def on_progress(done: int, total: int) -> None:
        pbar.total = total
        pbar.n = done
        pbar.refresh()

    try:
        outcome = await rename_identifiers(source_code, oracle, config, on_progress=on_progress)
    except ValidationFailure as e:
        debug_log("error", "Rewrite rejected", e.result.to_dict())
        raise
    finally:
        pbar.close()

    stats["bindings"] = len(outcome.analysis.bindings)
    stats["renamed"] = len(outcome.assignment.decisions)
    stats["kept"] = len(outcome.assignment.fallbacks)
    stats["warnings"] = len(outcome.validation.warnings)
    debug_log("info", "Renames applied", {
        "renames": {
            f"{d.original_name}@{outcome.analysis.bindings[d.binding_id].line}": d.new_name
            for d in outcome.assignment.decisions
        },
        "fallbacks": [f"{f.name}: {f.reason}" for f in outcome.assignment.fallbacks],
    })

    if output_path is None:
        if config.output_dir:
            output_path = config.output_dir / file_path.name
        else:
            output_path = file_path.with_suffix(".unmangled.js")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(outcome.code, encoding="utf-8")
    console.print(f"[green]Saved[/green] {output_path}")
    debug_log("info", f"Saved output to: {output_path}", {"stats": stats})
    return stats


async def process_directory(
    dir_path: Path,
    config: Config,
    oracle: NamingOracle,
    output_dir: Optional[Path] = None,
) -> list[dict]:
    """Process all JavaScript files in a directory.

    Files are processed concurrently, ``config.file_concurrency`` at a time.
    A failing file is reported and does not stop the others.
    """
    js_files = [
        f for f in sorted(dir_path.rglob("*.js"))
        if "node_modules" not in f.parts and not f.name.endswith(".unmangled.js")
    ]
    console.print(f"[blue]Found {len(js_files)} JavaScript files in {dir_path}[/blue]")
    semaphore = asyncio.Semaphore(config.file_concurrency)

    async def run(js_file: Path) -> dict:
        out_path = output_dir / js_file.relative_to(dir_path) if output_dir else None
        async with semaphore:
            try:
                return await process_file(js_file, config, oracle, out_path)
            except UnmangleError as e:
                console.print(f"[red]Error processing {js_file}: {e}[/red]")
                return {"file": str(js_file), "error": str(e)}

    return list(await asyncio.gather(*(run(js_file) for js_file in js_files)))


@click.group()
@click.version_option(version=__version__)
def main():
    """Unmangle - rename minified JavaScript identifiers using an LLM."""
    pass


@main.command()
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", "output_path", type=click.Path(path_type=Path), help="Output file/directory path")
@click.option("--provider", type=click.Choice(["openai", "anthropic"]), default="openai", help="LLM provider")
@click.option("--model", help="LLM model name")
@click.option("--api-key", help="API key (or set UNMANGLE_LLM_API_KEY env)")
@click.option("--base-url", help="Custom API base URL")
@click.option("--max-symbols", type=int, help="Max symbols per oracle request")
@click.option("--concurrency", type=int, help="Concurrent oracle requests per file")
@click.option("--only-minified", is_flag=True, help="Only rename names that look minified")
@click.option("--debug", is_flag=True, help="Enable debug logging to file")
@click.option("--debug-file", type=click.Path(path_type=Path), help="Debug log file path (default: unmangle_debug_TIMESTAMP.log)")
def deobfuscate(
    input_path: Path,
    output_path: Optional[Path],
    provider: str,
    model: Optional[str],
    api_key: Optional[str],
    base_url: Optional[str],
    max_symbols: Optional[int],
    concurrency: Optional[int],
    only_minified: bool,
    debug: bool,
    debug_file: Optional[Path],
):
    """Rename minified identifiers using an LLM.

    INPUT_PATH can be a JavaScript file or directory containing JS files.
    """
    if debug or debug_file:
        setup_debug_logger(debug_file)
        console.print(f"[yellow]Debug logging enabled: {debug_log_file}[/yellow]")

    # Only override .env values if CLI args are explicitly provided
    config_kwargs = {"llm_provider": LLMProvider(provider)}
    if model:
        config_kwargs["llm_model"] = model
    if api_key:
        config_kwargs["llm_api_key"] = api_key
    if base_url:
        config_kwargs["llm_base_url"] = base_url
    if max_symbols:
        config_kwargs["max_symbols_per_batch"] = max_symbols
    if concurrency:
        config_kwargs["llm_concurrency"] = concurrency
    if only_minified:
        config_kwargs["skip_descriptive_names"] = True

    config = Config(**config_kwargs)
    debug_log("info", "Configuration loaded", config.model_dump(exclude={"llm_api_key"}))

    if not config.llm_api_key:
        env_var = "OPENAI_API_KEY" if provider == "openai" else "ANTHROPIC_API_KEY"
        console.print(f"[red]Error: API key required. Set {env_var} environment variable or use --api-key[/red]")
        raise SystemExit(1)

    async def run() -> list[dict]:
        oracle = create_naming_oracle(config)
        try:
            if input_path.is_file():
                return [await process_file(input_path, config, oracle, output_path)]
            return await process_directory(input_path, config, oracle, output_path)
        finally:
            await oracle.close()

    try:
        results = asyncio.run(run())
    except UnmangleError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    table = Table(title="Processing Summary")
    table.add_column("File")
    table.add_column("Bindings")
    table.add_column("Renamed")
    table.add_column("Kept")
    table.add_column("Status")
    for r in results:
        status = "✓" if "error" not in r else "✗"
        table.add_row(r["file"], str(r.get("bindings", 0)), str(r.get("renamed", 0)), str(r.get("kept", 0)), status)
    console.print(table)

    if debug_log_file:
        console.print(f"\n[yellow]Debug log saved to: {debug_log_file}[/yellow]")
    if any("error" in r for r in results):
        raise SystemExit(1)


@main.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the analysis as JSON")
def analyze(input_path: Path, as_json: bool):
    """Analyze a JavaScript file and show its scopes and bindings."""
    source_code = input_path.read_text(encoding="utf-8")
    try:
        analysis = analyze_source(source_code)
    except UnmangleError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(analysis.to_dict(), ensure_ascii=False, indent=2))
        return

    console.print(f"[blue]File:[/blue] {input_path}")
    console.print(f"[blue]Scopes:[/blue] {len(analysis.scopes)}  [blue]Bindings:[/blue] {len(analysis.bindings)}")
    if analysis.has_dynamic_features:
        console.print("[yellow]Dynamic scope features found (eval/with); affected scopes are not renamed[/yellow]")

    table = Table(title="Scopes")
    table.add_column("Scope")
    table.add_column("Kind")
    table.add_column("Line")
    table.add_column("Size")
    table.add_column("Bindings")
    for scope in scopes_by_significance(analysis):
        if not scope.binding_ids:
            continue
        names = ", ".join(
            f"{binding.name} ({binding.kind.value})" for binding in analysis.bindings_in(scope.id)
        )
        table.add_row(f"{scope.id} {scope.label}", scope.kind.value, str(scope.line), str(scope.size), names)
    console.print(table)


@main.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--original",
    "original_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Original file; names free there are not reported as undefined",
)
def validate(input_path: Path, original_path: Optional[Path]):
    """Validate a (renamed) JavaScript file."""
    baseline = None
    if original_path is not None:
        try:
            baseline = ValidationBaseline.from_source(original_path.read_text(encoding="utf-8"))
        except UnmangleError as e:
            console.print(f"[red]Error in original: {e}[/red]")
            raise SystemExit(1)

    result = validate_code(input_path.read_text(encoding="utf-8"), baseline=baseline)
    for issue in result.errors:
        where = f" (line {issue.line})" if issue.line else ""
        console.print(f"[red]error[/red] {issue.type}: {issue.message}{where}")
    for issue in result.warnings:
        where = f" (line {issue.line})" if issue.line else ""
        console.print(f"[yellow]warning[/yellow] {issue.type}: {issue.message}{where}")

    if result.valid:
        console.print(f"[green]Valid[/green] ({len(result.warnings)} warnings)")
    else:
        console.print(f"[red]Invalid[/red] ({len(result.errors)} errors)")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
