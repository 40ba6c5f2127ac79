"""Tests for CLI commands and file processing."""

import json

import pytest
from click.testing import CliRunner

from unmangle import cli
from unmangle.config import Config


@pytest.mark.asyncio
async def test_process_file_writes_renamed_output(make_oracle, tmp_path):
    """process_file writes the renamed code next to the input."""
    input_file = tmp_path / "sample.js"
    input_file.write_text("var a = 1;\nconsole.log(a);\n", encoding="utf-8")
    oracle = make_oracle({"a": ["count"]})

    stats = await cli.process_file(input_file, Config(llm_api_key="test-key"), oracle)

    output = tmp_path / "sample.unmangled.js"
    assert output.read_text(encoding="utf-8") == "var count = 1;\nconsole.log(count);\n"
    assert stats["bindings"] == 1
    assert stats["renamed"] == 1
    assert stats["kept"] == 0


@pytest.mark.asyncio
async def test_process_directory_reports_bad_files(make_oracle, tmp_path):
    """A file that fails to parse is reported and the rest are written."""
    (tmp_path / "good.js").write_text("var a = 1;", encoding="utf-8")
    (tmp_path / "bad.js").write_text("var = ;", encoding="utf-8")
    out_dir = tmp_path / "out"

    results = await cli.process_directory(tmp_path, Config(llm_api_key="test-key"), make_oracle(), out_dir)

    by_name = {result["file"].rsplit("/", 1)[-1]: result for result in results}
    assert "error" in by_name["bad.js"]
    assert "error" not in by_name["good.js"]
    assert (out_dir / "good.js").read_text(encoding="utf-8") == "var a = 1;"


def test_analyze_json(tmp_path):
    """analyze --json prints the scope graph."""
    input_file = tmp_path / "sample.js"
    input_file.write_text("function f(a) { return a; }", encoding="utf-8")

    result = CliRunner().invoke(cli.main, ["analyze", str(input_file), "--json"])

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["hasDynamicFeatures"] is False
    assert sorted(binding["name"] for binding in data["bindings"].values()) == ["a", "f"]


def test_validate_against_original(tmp_path):
    """validate --original accepts free names the original already had."""
    original = tmp_path / "original.js"
    renamed = tmp_path / "renamed.js"
    original.write_text("const a = undefinedVar + 1;", encoding="utf-8")
    renamed.write_text("const total = undefinedVar + 1;", encoding="utf-8")

    runner = CliRunner()
    assert runner.invoke(cli.main, ["validate", str(renamed)]).exit_code == 1
    assert runner.invoke(cli.main, ["validate", str(renamed), "--original", str(original)]).exit_code == 0


def test_deobfuscate_requires_api_key(tmp_path, monkeypatch):
    """Without a key the command stops before doing any work."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("UNMANGLE_LLM_API_KEY", raising=False)
    input_file = tmp_path / "sample.js"
    input_file.write_text("var a = 1;", encoding="utf-8")

    result = CliRunner().invoke(cli.main, ["deobfuscate", str(input_file)])

    assert result.exit_code == 1
    assert not (tmp_path / "sample.unmangled.js").exists()
