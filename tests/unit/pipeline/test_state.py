# tests/unit/pipeline/test_state.py — v2
"""Tests for pipeline/state.py — checked run transitions and stage bookkeeping."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest

from shipline.core.errors import BuildFailure, InvalidTransition
from shipline.core.models import PipelineRun
from shipline.pipeline import state as state_module
from shipline.pipeline.state import TERMINAL_STATES, TRANSITIONS, RunStateMachine


@pytest.fixture
def machine() -> RunStateMachine:
    return RunStateMachine(PipelineRun.for_services(["backend", "frontend"]))


class TestTransitions:
    def test_happy_path(self, machine):
        for state in ("building", "publishing", "deploying", "succeeded"):
            machine.advance(state)
        assert machine.state == "succeeded"
        assert machine.is_terminal
        assert machine.run.completed_at is not None

    @pytest.mark.parametrize("target", ["publishing", "deploying", "succeeded", "failed"])
    def test_idle_only_goes_to_building(self, machine, target):
        with pytest.raises(InvalidTransition, match="idle -> "):
            machine.advance(target)

    def test_cannot_deploy_without_publishing(self, machine):
        machine.advance("building")
        with pytest.raises(InvalidTransition):
            machine.advance("deploying")

    def test_cannot_succeed_from_publishing(self, machine):
        machine.advance("building")
        machine.advance("publishing")
        with pytest.raises(InvalidTransition):
            machine.advance("succeeded")

    @pytest.mark.parametrize("stage", ["building", "publishing", "deploying"])
    def test_every_active_state_can_fail(self, stage):
        m = RunStateMachine(PipelineRun.for_services(["backend"]))
        for state in ("building", "publishing", "deploying"):
            m.advance(state)
            if state == stage:
                break
        m.fail()
        assert m.state == "failed"

    def test_failed_run_cannot_resume(self, machine):
        machine.advance("building")
        machine.fail()
        for target in TRANSITIONS:
            with pytest.raises(InvalidTransition):
                machine.advance(target)  # type: ignore[arg-type]

    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATES:
            assert TRANSITIONS[state] == frozenset()


class TestStageBookkeeping:
    def test_start_and_finish(self, machine):
        machine.start_stage("build-backend")
        stage = machine.run.stage("build-backend")
        assert stage.status == "running"
        assert stage.started_at is not None

        machine.finish_stage("build-backend")
        assert stage.status == "succeeded"
        assert stage.duration_ms is not None and stage.duration_ms >= 0

    def test_fail_stage_records_error_type(self, machine):
        machine.start_stage("build-backend")
        machine.fail_stage("build-backend", BuildFailure("backend", "npm ERR!"))
        stage = machine.run.stage("build-backend")
        assert stage.status == "failed"
        assert stage.error_type == "BuildFailure"
        assert "npm ERR!" in stage.error

    def test_pending_stages_skipped_on_terminal(self, machine):
        machine.advance("building")
        machine.start_stage("build-backend")
        machine.fail_stage("build-backend", RuntimeError("boom"))
        machine.start_stage("build-frontend")
        machine.finish_stage("build-frontend")
        machine.fail()

        statuses = {s.name: s.status for s in machine.run.stages}
        assert statuses == {
            "build-backend": "failed",
            "build-frontend": "succeeded",
            "publish-backend": "skipped",
            "publish-frontend": "skipped",
            "deploy": "skipped",
        }

    def test_unknown_stage_raises(self, machine):
        with pytest.raises(KeyError):
            machine.start_stage("lint")


class TestModuleSource:
    def test_compiles_without_escape_warnings(self):
        source = Path(state_module.__file__).read_text(encoding="utf-8")
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(source, state_module.__file__, "exec")

    def test_diagram_kept_in_docstring(self):
        assert "\\" in state_module.__doc__
