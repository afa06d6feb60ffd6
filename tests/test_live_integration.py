import os
from pathlib import Path

import pytest

from registry_harvester.cancellation import CancellationToken
from registry_harvester.cli import main
from registry_harvester.config import CollectConfig
from registry_harvester.pipeline import run_collection

requires_live = pytest.mark.skipif(
    os.getenv("RUN_LIVE_INTEGRATION") != "1",
    reason="Set RUN_LIVE_INTEGRATION=1 to execute live integration tests.",
)


@requires_live
def test_live_sources_command_smoke() -> None:
    assert main(["sources"]) == 0


@requires_live
def test_live_church_directory_first_region(tmp_path: Path) -> None:
    config = CollectConfig(
        source_id="church",
        data_dir=str(tmp_path),
        regions=("제주",),
        max_items=5,
        show_progress=False,
    )
    result = run_collection(config, CancellationToken())
    assert result.status == "done"
    assert result.saved <= 5
