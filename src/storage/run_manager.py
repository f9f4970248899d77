# src/storage/run_manager.py — v2
"""Run ledger: persist Pipeline Run manifests and the 'latest' link.

The manifest is the PipelineRun model itself. It holds no credentials:
secrets live only in Settings and credential models, which are never
part of a run.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from shipline.core.models import PipelineRun
from shipline.storage import layout
from shipline.storage.base_output_writer import BaseOutputWriter
from shipline.storage.local_writer import LocalWriter
from shipline.storage.models import LedgerSummary

logger = logging.getLogger(__name__)

_TERMINAL = ("succeeded", "failed")


class RunLedger:
    """Read and write run manifests under ``output_dir``."""

    def __init__(self, output_dir: Path, writer: BaseOutputWriter | None = None) -> None:
        self._output_dir = Path(output_dir)
        self._writer = writer or LocalWriter()

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    async def save(self, run: PipelineRun) -> Path:
        """Write the run manifest; point 'latest' at it once the run has finished."""
        path = layout.run_manifest_path(self._output_dir, run.run_id)
        await self._writer.write(str(path), run.model_dump_json(indent=2))
        if run.state in _TERMINAL:
            await self._writer.create_symlink(
                run.run_id, str(layout.latest_link(self._output_dir))
            )
        return path

    async def load(self, run_id: str) -> PipelineRun:
        """Load one run manifest.

        Raises:
            FileNotFoundError: If the run is unknown.
            ValueError: If the manifest is corrupt.
        """
        path = layout.run_manifest_path(self._output_dir, run_id)
        if not await self._writer.exists(str(path)):
            raise FileNotFoundError(f"No run manifest for {run_id!r} in {self._output_dir}")
        raw = await self._writer.read(str(path))
        try:
            return PipelineRun.model_validate_json(raw)
        except ValidationError as exc:
            raise ValueError(f"Corrupt run manifest {path}: {exc}") from exc

    async def list_runs(self) -> list[str]:
        """Run ids, oldest first (run ids sort by creation time)."""
        entries = await self._writer.list_dir(str(self._output_dir))
        runs: list[str] = []
        for name in entries:
            if name == layout.LATEST_LINK or name.startswith("."):
                continue
            if await self._writer.exists(str(layout.run_manifest_path(self._output_dir, name))):
                runs.append(name)
        return runs

    async def latest(self) -> PipelineRun | None:
        """Most recently finished run, or None."""
        link = layout.latest_link(self._output_dir)
        if not await self._writer.exists(str(link / layout.RUN_MANIFEST)):
            return None
        raw = await self._writer.read(str(link / layout.RUN_MANIFEST))
        return PipelineRun.model_validate_json(raw)

    async def summarize(self) -> LedgerSummary:
        """Aggregate counts over every readable manifest."""
        summary = LedgerSummary()
        for run_id in await self.list_runs():
            try:
                run = await self.load(run_id)
            except ValueError as exc:
                logger.warning("Skipping run %s: %s", run_id, exc)
                continue
            summary.total_runs += 1
            if run.state == "succeeded":
                summary.succeeded += 1
            elif run.state == "failed":
                summary.failed += 1
                for stage in run.failed_stages:
                    summary.failures_by_stage[stage] = summary.failures_by_stage.get(stage, 0) + 1
            else:
                summary.unfinished += 1
            summary.last_run_id = run.run_id
            summary.last_state = run.state
            summary.last_completed_at = run.completed_at
        return summary
