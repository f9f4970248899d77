# tests/unit/test_main.py — v2
"""Tests for main.py — CLI entry point."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from shipline.config.settings import load_settings
from shipline.core.errors import RunInProgress
from shipline.core.models import PipelineRun
from shipline.main import _build_parser, main


@pytest.fixture(autouse=True)
def _restore_shipline_logger():
    root = logging.getLogger("shipline")
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------

class TestBuildParser:
    def test_version_flag(self):
        parser = _build_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_run_defaults(self):
        args = _build_parser().parse_args(["run"])
        assert args.command == "run"
        assert args.branch is None
        assert args.manual is False
        assert args.host is None

    def test_run_push(self):
        args = _build_parser().parse_args(["run", "--branch", "main", "--revision", "abc123"])
        assert args.branch == "main"
        assert args.revision == "abc123"

    def test_manual_and_branch_exclusive(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["run", "--manual", "--branch", "main"])

    def test_recipe_choices(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["recipe", "worker"])

    def test_recipe_output(self):
        args = _build_parser().parse_args(["recipe", "frontend", "-o", "Dockerfile"])
        assert args.service == "frontend"
        assert args.output == Path("Dockerfile")

    def test_show(self):
        args = _build_parser().parse_args(["show", "latest"])
        assert args.run_id == "latest"

    def test_global_flags(self):
        args = _build_parser().parse_args(["-v", "--env-file", "prod.env", "history"])
        assert args.verbose is True
        assert args.env_file == Path("prod.env")


# ---------------------------------------------------------------------------
# Command tests
# ---------------------------------------------------------------------------

def _env(tmp_path: Path, **extra: str) -> Path:
    values = {
        "SSH_HOST": "203.0.113.10",
        "SSH_KEY_PATH": str(tmp_path / "id_ed25519"),
        "OUTPUT_DIR": str(tmp_path / "runs"),
        "RUN_LOCK_FILE": str(tmp_path / "run.lock"),
        "COMPOSE_FILE": str(tmp_path / "docker-compose.yml"),
    }
    values.update(extra)
    env = tmp_path / "test.env"
    env.write_text("".join(f"{k}={v}\n" for k, v in values.items()))
    return env


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_recipe_to_stdout(self, tmp_path, capsys):
        assert main(["--env-file", str(_env(tmp_path)), "recipe", "backend"]) == 0
        assert "FROM node:18-alpine" in capsys.readouterr().out

    def test_recipe_to_file(self, tmp_path):
        out = tmp_path / "Dockerfile"
        assert main(["--env-file", str(_env(tmp_path)), "recipe", "frontend", "-o", str(out)]) == 0
        assert "FROM nginx:alpine" in out.read_text()

    def test_compose(self, tmp_path, capsys):
        assert main(["--env-file", str(_env(tmp_path)), "compose"]) == 0
        out = capsys.readouterr().out
        assert "tutorial-backend:latest" in out
        assert "dbdata" in out

    def test_run_success(self, tmp_path):
        run = PipelineRun(state="succeeded")
        with patch("shipline.api.facade.run_pipeline", new=AsyncMock(return_value=run)) as rp:
            code = main(["--env-file", str(_env(tmp_path)), "run", "--branch", "main"])
        assert code == 0
        trigger = rp.await_args.args[0]
        assert trigger.kind == "push"
        assert trigger.branch == "main"

    def test_run_failed(self, tmp_path):
        run = PipelineRun(state="failed")
        with patch("shipline.api.facade.run_pipeline", new=AsyncMock(return_value=run)):
            assert main(["--env-file", str(_env(tmp_path)), "run"]) == 1

    def test_run_ignored_branch(self, tmp_path, capsys):
        with patch("shipline.api.facade.run_pipeline", new=AsyncMock(return_value=None)):
            assert main(["--env-file", str(_env(tmp_path)), "run", "--branch", "dev"]) == 0
        assert "ignored" in capsys.readouterr().out

    def test_host_override(self, tmp_path):
        run = PipelineRun(state="succeeded")
        with patch("shipline.api.facade.run_pipeline", new=AsyncMock(return_value=run)) as rp:
            main(["--env-file", str(_env(tmp_path)), "run", "--host", "198.51.100.7"])
        assert rp.await_args.kwargs["settings"].ssh_host == "198.51.100.7"

    def test_settings_loaded_through_load_settings(self, tmp_path):
        env = _env(tmp_path)
        with patch("shipline.config.settings.load_settings", wraps=load_settings) as ls:
            assert main(["--env-file", str(env), "history"]) == 0
        ls.assert_called_once_with(_env_file=env)

    def test_run_in_progress(self, tmp_path, capsys):
        with patch(
            "shipline.api.facade.run_pipeline",
            new=AsyncMock(side_effect=RunInProgress("Run lock is held")),
        ):
            assert main(["--env-file", str(_env(tmp_path)), "run"]) == 1
        assert "Run lock is held" in capsys.readouterr().err

    def test_invalid_settings(self, tmp_path, capsys):
        env = _env(tmp_path, IMAGE_TAGS="")
        assert main(["--env-file", str(env), "history"]) == 1
        assert "IMAGE_TAGS" in capsys.readouterr().err

    def test_history_empty(self, tmp_path, capsys):
        assert main(["--env-file", str(_env(tmp_path)), "history"]) == 0
        assert "Total:      0" in capsys.readouterr().out

    def test_show_latest_none(self, tmp_path, capsys):
        assert main(["--env-file", str(_env(tmp_path)), "show", "latest"]) == 1
        assert "No finished runs" in capsys.readouterr().out

    def test_show_unknown(self, tmp_path, capsys):
        assert main(["--env-file", str(_env(tmp_path)), "show", "20990101_000000_ffffff"]) == 1
