from pathlib import Path
from typing import Any

import pytest

from registry_harvester import cli
from registry_harvester.config import CollectConfig, ExtractConfig
from registry_harvester.models import CollectedOrganization, CollectionResult, EmailStatus, ExtractionResult
from registry_harvester.storage import open_stores


def test_parse_args_collect_options() -> None:
    args = cli.parse_args(
        ["collect", "kindergarten", "--region", "서울", "--region", "부산", "--private-only", "--max-items", "50"]
    )
    config = cli.namespace_to_config(args)
    assert isinstance(config, CollectConfig)
    assert config.regions == ("서울", "부산")
    assert config.establishment_types == ("사립",)
    assert config.max_items == 50


def test_parse_args_extract_options() -> None:
    args = cli.parse_args(
        ["extract-emails", "--category", "교회", "--relay", "https://r.test/?u={url}", "--no-direct", "--verify-mx"]
    )
    config = cli.namespace_to_config(args)
    assert isinstance(config, ExtractConfig)
    assert config.categories == ("교회",)
    assert config.relays == ("https://r.test/?u={url}",)
    assert config.use_direct is False
    assert config.verify_mx is True


def test_parse_args_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])


def test_establishment_options_are_exclusive() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["collect", "kindergarten", "--private-only", "--establishment", "공립"])


def test_main_collect_returns_zero_on_success(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[Any] = []

    def fake_run(config: CollectConfig, token: Any, *, logger: Any) -> CollectionResult:
        seen.append(config)
        return CollectionResult(source_id=config.source_id, status="done", saved=3)

    monkeypatch.setattr(cli, "run_collection", fake_run)
    assert cli.main(["collect", "church", "--no-progress"]) == 0
    assert seen[0].show_progress is False


def test_main_cancelled_run_still_returns_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli, "run_extraction", lambda config, token, *, logger: ExtractionResult(status="aborted", total=3)
    )
    assert cli.main(["extract-emails"]) == 0


def test_main_returns_two_on_invalid_config() -> None:
    assert cli.main(["collect", "church", "--max-items", "-1"]) == 2
    assert cli.main(["collect", "church", "--relay", "https://no-placeholder.test/"]) == 2


def test_main_returns_two_on_missing_credentials(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NEIS_API_KEY", raising=False)
    assert cli.main(["collect", "elementary", "--data-dir", str(tmp_path), "--no-progress"]) == 2


def test_stats_and_reset_failed_commands(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    stores = open_stores(tmp_path)
    stores.sink.append([CollectedOrganization(name="가", homepage="a.kr")], "유치원")
    stores.organizations.update_status(2, EmailStatus.FAILED)

    assert cli.main(["stats", "--data-dir", str(tmp_path)]) == 0
    assert "failed (F): 1" in capsys.readouterr().out
    assert cli.main(["reset-failed", "--data-dir", str(tmp_path)]) == 0
    assert stores.organizations.stats().pending == 1


def test_sources_command_lists_every_source(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["sources"]) == 0
    out = capsys.readouterr().out
    for source_id in ("kindergarten", "elementary", "middle", "high", "university", "church"):
        assert source_id in out
