# tests/unit/logging/test_unit_context.py — v1
"""Tests for logging/context.py — context variables per run and stage."""

from __future__ import annotations

import asyncio

import pytest

from shipline.logging.context import (
    LogContext,
    clear_context,
    clear_stage_context,
    get_context,
    set_run_context,
    set_stage_context,
)


@pytest.fixture(autouse=True)
def _clean():
    clear_context()
    yield
    clear_context()


def test_empty_context():
    assert get_context().as_dict() == {}


def test_run_and_stage():
    set_run_context("r1")
    set_stage_context("deploy")
    assert get_context() == LogContext(run_id="r1", stage="deploy", service=None)


def test_clear_stage_keeps_run():
    set_run_context("r1")
    set_stage_context("build-backend", "backend")
    clear_stage_context()
    assert get_context().as_dict() == {"run_id": "r1"}


@pytest.mark.asyncio
async def test_sibling_tasks_isolated():
    set_run_context("r1")
    seen: dict[str, str | None] = {}

    async def stage(name: str, service: str) -> None:
        set_stage_context(name, service)
        await asyncio.sleep(0)
        seen[name] = get_context().service

    await asyncio.gather(stage("build-backend", "backend"), stage("build-frontend", "frontend"))

    assert seen == {"build-backend": "backend", "build-frontend": "frontend"}
    assert get_context().stage is None
    assert get_context().run_id == "r1"
