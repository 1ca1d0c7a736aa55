import json
from pathlib import Path
from unittest.mock import patch

import yaml
from click.testing import CliRunner

from api_test_synth.cli import main

FIXTURES = Path(__file__).parent / "fixtures"


class TestCliAnalyze:
    def test_analyze_petstore(self):
        result = CliRunner().invoke(main, ["analyze", str(FIXTURES / "petstore.yaml")])
        assert result.exit_code == 0
        assert "Found 3 endpoints." in result.output
        assert "POST /pets: complexity 28 (HIGH)" in result.output

    def test_analyze_numeric_status_codes(self):
        result = CliRunner().invoke(main, ["analyze", str(FIXTURES / "numeric_status.yaml")])
        assert result.exit_code == 0, result.output
        assert "Found 2 endpoints." in result.output
        assert "POST /orders: complexity" in result.output

    def test_analyze_invalid_document(self, tmp_path):
        f = tmp_path / "bad.yaml"
        f.write_text("just: text\n")
        result = CliRunner().invoke(main, ["analyze", str(f)])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestCliGenerate:
    def test_generate_json(self, tmp_path):
        output_file = tmp_path / "out" / "result.json"
        result = CliRunner().invoke(main, [
            "generate", str(FIXTURES / "petstore.yaml"),
            "-o", str(output_file),
            "--quality", "minimal",
        ])

        assert result.exit_code == 0, result.output
        assert "Result saved to" in result.output
        data = json.loads(output_file.read_text())
        assert set(data["suites"]) == {"GET /pets", "POST /pets", "GET /pets/{petId}"}
        assert all(len(s["test_cases"]) <= 5 for s in data["suites"].values())
        assert data["state"] == "COMPLETED"

    def test_generate_yaml_with_test_types(self, tmp_path):
        output_file = tmp_path / "result.yaml"
        result = CliRunner().invoke(main, [
            "generate", str(FIXTURES / "swagger2.json"),
            "-o", str(output_file),
            "--format", "yaml",
            "--test-type", "functional",
            "--test-type", "security",
        ])

        assert result.exit_code == 0, result.output
        data = yaml.safe_load(output_file.read_text())
        scenarios = {c["scenario"] for s in data["suites"].values() for c in s["test_cases"]}
        assert scenarios <= {"functional", "security"}

    def test_generate_with_config_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("strategy: basic\nmax_total_cases: 4\n")
        output_file = tmp_path / "result.json"
        result = CliRunner().invoke(main, [
            "generate", str(FIXTURES / "petstore.yaml"),
            "-o", str(output_file),
            "--config", str(config_file),
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(output_file.read_text())
        assert len(data["plan"]["case_ids"]) <= 4

    def test_bad_config_exits_with_error(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("max_workers: 0\n")
        result = CliRunner().invoke(main, [
            "generate", str(FIXTURES / "petstore.yaml"),
            "-o", str(tmp_path / "result.json"),
            "--config", str(config_file),
        ])
        assert result.exit_code == 1
        assert "max_workers" in result.output

    @patch("api_test_synth.cli.GenerationOrchestrator")
    def test_ai_providers_passed_to_config(self, MockOrchestrator, tmp_path):
        MockOrchestrator.side_effect = RuntimeError("stop here")
        result = CliRunner().invoke(main, [
            "generate", str(FIXTURES / "petstore.yaml"),
            "-o", str(tmp_path / "result.json"),
            "--ai-provider", "gpt-4o",
            "--ai-provider", "claude-sonnet-4-20250514",
        ])
        config = MockOrchestrator.call_args[0][0]
        assert config.ai_providers == ("gpt-4o", "claude-sonnet-4-20250514")
        assert isinstance(result.exception, RuntimeError)
