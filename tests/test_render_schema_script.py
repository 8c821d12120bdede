from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
SCRIPT_PATH = ROOT / "scripts" / "render_schema.py"


def _run_script(*args: str) -> str:
    env = {**os.environ, "PYTHONPATH": os.pathsep.join(filter(None, [str(ROOT), os.environ.get("PYTHONPATH")]))}
    completed = subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=True,
        capture_output=True,
        text=True,
        env=env,
    )
    return completed.stdout


def test_render_schema_emits_tables_read_by_capacity_check() -> None:
    output = _run_script()

    assert "create table if not exists jobs (" in output
    assert "id text primary key" in output
    assert "create table if not exists daily_stats (" in output
    assert "drop table" not in output


def test_render_schema_can_prefix_drop_statements() -> None:
    output = _run_script("--drop-existing")

    assert output.index("drop table if exists daily_stats;") < output.index("create table if not exists jobs (")
