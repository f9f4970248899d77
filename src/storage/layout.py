# src/storage/layout.py — v2
"""Run ledger directory structure.

    {output_dir}/
        {run_id}/run_manifest.json
        latest -> {run_id}       (last finished run)
"""

from __future__ import annotations

from pathlib import Path

RUN_MANIFEST = "run_manifest.json"
LATEST_LINK = "latest"


def run_dir(output_dir: Path, run_id: str) -> Path:
    """Return the directory of one run."""
    return output_dir / run_id


def run_manifest_path(output_dir: Path, run_id: str) -> Path:
    return run_dir(output_dir, run_id) / RUN_MANIFEST


def latest_link(output_dir: Path) -> Path:
    """Return path to the 'latest' symlink."""
    return output_dir / LATEST_LINK
