import logging
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

import pytest

from registry_harvester import pipeline
from registry_harvester.adapters import ChurchDirectoryAdapter
from registry_harvester.cancellation import CancellationToken
from registry_harvester.config import CollectConfig
from registry_harvester.errors import CollectionCancelled, ConfigError, IncompleteRegion
from registry_harvester.models import CollectedOrganization, CollectionFilters, CrawlCheckpoint, PayloadKind, Severity
from registry_harvester.pipeline import collect_records, run_collection, select_regions
from registry_harvester.reporting import Reporter
from registry_harvester.sources import build_sources
from registry_harvester.storage import open_stores

SOURCES = build_sources({"KINDERGARTEN_API_KEY": "k", "ODCLOUD_API_KEY": "o"})
LOGGER = logging.getLogger("test")


def _orgs(*names: str) -> list[CollectedOrganization]:
    return [CollectedOrganization(name=name, homepage=f"{name}.kr") for name in names]


class ScriptedAdapter:
    def __init__(self, script: dict[str, Any]) -> None:
        self._script = script
        self.calls: list[str] = []

    def fetch_region(
        self, region: str, filters: CollectionFilters, token: CancellationToken
    ) -> list[CollectedOrganization]:
        self.calls.append(region)
        step = self._script[region]
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(token)
        return list(step)


class ResumableScriptedAdapter(ScriptedAdapter):
    def resume_page(self, region: str) -> int:
        return 3

    def reset_progress(self, region: str | None = None) -> None:
        return None

    def rewind(self, region: str, index: int) -> None:
        self.rewound = (region, index)


def _run(tmp_path: Path, adapter: Any, regions: list[str], **kwargs: Any) -> tuple[Any, Reporter, list[Any]]:
    snapshots: list[Any] = []
    reporter = Reporter(on_progress=snapshots.append, logger=LOGGER)
    kwargs.setdefault("token", CancellationToken())
    result = collect_records(
        SOURCES["kindergarten"],
        adapter=adapter,
        sink=open_stores(tmp_path).sink,
        reporter=reporter,
        regions=regions,
        region_delay=0,
        logger=LOGGER,
        **kwargs,
    )
    return result, reporter, snapshots


def _outcome_lines(reporter: Reporter, region: str) -> list[str]:
    return [entry.message for entry in reporter.entries if entry.message.startswith(f"{region}:")]


def test_budget_caps_new_records_even_within_one_region(tmp_path: Path) -> None:
    adapter = ScriptedAdapter({"서울": _orgs("a", "b", "c", "d", "e"), "부산": _orgs("f", "g")})
    result, reporter, _ = _run(tmp_path, adapter, ["서울", "부산"], max_items=3)

    assert result.status == "done"
    assert result.saved == 3
    assert result.over_budget == 2
    assert adapter.calls == ["서울"]
    assert len(open_stores(tmp_path).organizations.read_rows()) == 3
    assert any(entry.severity is Severity.WARNING and "Reached 3" in entry.message for entry in reporter.entries)


def test_budget_spans_regions(tmp_path: Path) -> None:
    adapter = ScriptedAdapter({"서울": _orgs("a", "b"), "부산": _orgs("c", "d"), "대구": _orgs("e")})
    result, _, _ = _run(tmp_path, adapter, ["서울", "부산", "대구"], max_items=3)
    assert [org.name for org in result.organizations] == ["a", "b", "c"]
    assert adapter.calls == ["서울", "부산"]


def test_dedupe_against_prior_runs_and_within_the_run(tmp_path: Path) -> None:
    open_stores(tmp_path).sink.append(_orgs("가"), "유치원")
    adapter = ScriptedAdapter({"서울": _orgs("가", "나"), "부산": _orgs("나", "다", "다")})
    result, _, _ = _run(tmp_path, adapter, ["서울", "부산"])

    assert [org.name for org in result.organizations] == ["나", "다"]
    assert result.skipped_duplicates == 3
    names = [row["name"] for row in open_stores(tmp_path).organizations.read_rows()]
    assert names == ["가", "나", "다"]


def test_disabled_dedupe_keeps_repeats(tmp_path: Path) -> None:
    open_stores(tmp_path).sink.append(_orgs("가"), "유치원")
    adapter = ScriptedAdapter({"서울": _orgs("가", "가")})
    result, _, _ = _run(tmp_path, adapter, ["서울"], skip_duplicates=False)
    assert result.saved == 2


def test_failing_region_is_isolated(tmp_path: Path) -> None:
    adapter = ScriptedAdapter({"서울": RuntimeError("schema drift"), "부산": _orgs("x")})
    result, reporter, _ = _run(tmp_path, adapter, ["서울", "부산"])

    assert result.status == "done"
    assert result.failed_regions == ["서울"]
    assert result.completed_regions == ["부산"]
    assert result.saved == 1
    assert len(_outcome_lines(reporter, "서울")) == 1
    assert len(_outcome_lines(reporter, "부산")) == 1
    error = next(entry for entry in reporter.entries if entry.message.startswith("서울:"))
    assert error.severity is Severity.ERROR
    assert "schema drift" in (error.details or "")


def test_cancel_before_start_returns_empty_result(tmp_path: Path) -> None:
    token = CancellationToken()
    token.cancel()
    adapter = ScriptedAdapter({"서울": _orgs("a")})
    result, _, snapshots = _run(tmp_path, adapter, ["서울"], token=token)

    assert result.status == "aborted"
    assert result.organizations == []
    assert result.saved == 0
    assert adapter.calls == []
    assert snapshots[-1].status == "aborted"


def test_cancel_mid_region_persists_partial_results_and_stops(tmp_path: Path) -> None:
    def cancel_after_partial(token: CancellationToken) -> list[CollectedOrganization]:
        token.cancel()
        return _orgs("partial")

    adapter = ScriptedAdapter({"서울": cancel_after_partial, "부산": _orgs("never")})
    result, reporter, _ = _run(tmp_path, adapter, ["서울", "부산"])

    assert result.status == "aborted"
    assert result.saved == 1
    assert result.completed_regions == []
    assert adapter.calls == ["서울"]
    assert _outcome_lines(reporter, "서울") == ["서울: stopped early, partial results kept"]


def test_deferred_save_writes_once_at_the_end(tmp_path: Path) -> None:
    adapter = ScriptedAdapter({"서울": _orgs("a"), "부산": _orgs("b")})
    result, reporter, snapshots = _run(tmp_path, adapter, ["서울", "부산"], save_per_region=False)

    assert result.saved == 2
    saving = [snapshot for snapshot in snapshots if snapshot.status == "saving"]
    assert len(saving) == 1
    assert saving[0].current_region is None
    assert any(entry.severity is Severity.SAVING for entry in reporter.entries)


def test_progress_snapshots_follow_the_state_machine(tmp_path: Path) -> None:
    adapter = ScriptedAdapter({"서울": _orgs("a"), "부산": []})
    _, _, snapshots = _run(tmp_path, adapter, ["서울", "부산"])
    assert [snapshot.status for snapshot in snapshots] == ["collecting", "saving", "collecting", "done"]
    assert snapshots[-1].collected == 1
    assert snapshots[-1].total == 2


def test_resumable_adapter_reports_resume_page(tmp_path: Path) -> None:
    adapter = ResumableScriptedAdapter({"서울": _orgs("a")})
    _, reporter, _ = _run(tmp_path, adapter, ["서울"])
    outcome = next(entry for entry in reporter.entries if entry.message.startswith("서울:"))
    assert "resumed from page 3" in (outcome.details or "")


def test_select_regions_keeps_enumerator_order() -> None:
    source = SOURCES["kindergarten"]
    assert select_regions(source, ["부산", "서울"]) == ["서울", "부산"]
    assert select_regions(source)[0] == "서울"
    assert len(select_regions(source)) == 17
    assert select_regions(SOURCES["university"], ["전국"]) == ["전국"]
    with pytest.raises(ConfigError):
        select_regions(source, ["전국"])
    with pytest.raises(ConfigError):
        select_regions(source, ["Atlantis"])


def test_run_collection_rejects_missing_credentials_before_network(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        run_collection(CollectConfig(source_id="elementary", data_dir=str(tmp_path)), environ={})
    with pytest.raises(ConfigError):
        run_collection(CollectConfig(source_id="hospital", data_dir=str(tmp_path)), environ={})


CHURCH_PAGE = """
<html><body><table><tbody>
<tr>
  <td rowspan="4" class="bb-2">서울노회</td>
  <td rowspan="4">{name}</td>
  <td rowspan="4">04500</td>
  <td rowspan="4">서울 중구</td>
  <td rowspan="4">최목사</td>
  <td>TEL : 02-1234-5678</td>
</tr>
<tr><td><a href="http://{slug}.kr">{slug}</a></td></tr>
<tr><td>FAX : </td></tr>
<tr><td>EMAIL : {email}</td></tr>
</tbody></table>{links}</body></html>
"""


class PageGateway:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def fetch(self, url: str, kind: PayloadKind = PayloadKind.JSON, token: Any = None) -> str:
        self.calls.append(url)
        if "page=1" in url:
            return CHURCH_PAGE.format(name="첫교회", slug="first", email="", links='<a href="?page=2">2</a>')
        return CHURCH_PAGE.format(name="둘째교회", slug="second", email="pastor@second.kr", links="")


def test_run_collection_end_to_end_with_church_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    gateway = PageGateway()
    monkeypatch.setattr(pipeline, "build_gateway", lambda **_kwargs: gateway)
    stores = open_stores(tmp_path)
    stores.checkpoints.save(CrawlCheckpoint("church", "서울", 9, "2026-10-17T00:00:00+00:00"))
    config = CollectConfig(
        source_id="church",
        data_dir=str(tmp_path),
        regions=("서울",),
        restart=True,
        region_delay=0,
        page_delay=0,
        show_progress=False,
    )
    logs: list[Any] = []
    result = run_collection(config, CancellationToken(), on_log=logs.append, environ={})

    assert result.status == "done"
    assert [org.name for org in result.organizations] == ["첫교회", "둘째교회"]
    assert "page=1" in gateway.calls[0]
    rows = stores.organizations.read_rows()
    assert [(row["name"], row["category"], row["email_status"]) for row in rows] == [
        ("첫교회", "교회", "N"),
        ("둘째교회", "교회", "Y"),
    ]
    assert [contact.email for contact in stores.contacts.read()] == ["pastor@second.kr"]
    assert stores.checkpoints.get("church", "서울") is None
    assert logs


def test_incomplete_region_keeps_partial_rows_and_is_not_completed(tmp_path: Path) -> None:
    adapter = ScriptedAdapter(
        {"서울": IncompleteRegion("page unavailable for 강남구", _orgs("a", "b")), "부산": _orgs("c")}
    )
    result, reporter, _ = _run(tmp_path, adapter, ["서울", "부산"])

    assert result.status == "done"
    assert result.saved == 3
    assert result.incomplete_regions == ["서울"]
    assert result.failed_regions == []
    assert result.completed_regions == ["부산"]
    lines = [entry for entry in reporter.entries if entry.message.startswith("서울:")]
    assert [(entry.severity, entry.message) for entry in lines] == [
        (Severity.WARNING, "서울: incomplete, partial results kept")
    ]
    assert "강남구" in (lines[0].details or "")


def test_over_budget_rows_rewind_a_resumable_adapter(tmp_path: Path) -> None:
    adapter = ResumableScriptedAdapter({"서울": _orgs("a", "b", "c")})
    result, _, _ = _run(tmp_path, adapter, ["서울"], max_items=1)
    assert result.over_budget == 2
    assert adapter.rewound == ("서울", 1)


class ChurchListingGateway:
    def __init__(self, last_page: int, *, cancel_at: int | None = None, missing: int | None = None) -> None:
        self._last_page = last_page
        self._cancel_at = cancel_at
        self._missing = missing
        self.pages: list[int] = []

    def fetch(self, url: str, kind: PayloadKind = PayloadKind.JSON, token: Any = None) -> str | None:
        page = int(parse_qs(urlparse(url).query)["page"][0])
        self.pages.append(page)
        if page == self._cancel_at:
            token.cancel()
            raise CollectionCancelled("aborted in flight")
        if page == self._missing:
            return None
        links = f'<a href="?page={page + 1}">{page + 1}</a>' if page < self._last_page else ""
        return CHURCH_PAGE.format(name=f"교회{page}", slug=f"church{page}", email="", links=links)


def _collect_church(tmp_path: Path, gateway: ChurchListingGateway, **kwargs: Any) -> tuple[Any, Reporter]:
    stores = open_stores(tmp_path)
    adapter = ChurchDirectoryAdapter(
        SOURCES["church"], checkpoints=stores.checkpoints, gateway=gateway, page_delay=0, logger=LOGGER
    )
    reporter = Reporter(logger=LOGGER)
    kwargs.setdefault("token", CancellationToken())
    result = collect_records(
        SOURCES["church"],
        adapter=adapter,
        sink=stores.sink,
        reporter=reporter,
        regions=["서울"],
        region_delay=0,
        logger=LOGGER,
        **kwargs,
    )
    return result, reporter


def test_budget_then_cancel_then_resume_loses_no_church(tmp_path: Path) -> None:
    first, _ = _collect_church(tmp_path, ChurchListingGateway(4, cancel_at=3), max_items=1)
    assert (first.status, first.saved, first.over_budget) == ("aborted", 1, 1)
    assert open_stores(tmp_path).checkpoints.get("church", "서울").last_page == 2  # type: ignore[union-attr]

    gateway = ChurchListingGateway(4)
    second, _ = _collect_church(tmp_path, gateway)
    assert second.status == "done"
    assert gateway.pages == [2, 3, 4]
    names = [row["name"] for row in open_stores(tmp_path).organizations.read_rows()]
    assert names == ["교회1", "교회2", "교회3", "교회4"]
    assert open_stores(tmp_path).checkpoints.get("church", "서울") is None


def test_unavailable_church_page_is_reported_with_resume_point(tmp_path: Path) -> None:
    result, reporter = _collect_church(tmp_path, ChurchListingGateway(4, missing=2))

    assert result.status == "done"
    assert result.saved == 1
    assert result.completed_regions == []
    assert result.incomplete_regions == ["서울"]
    lines = [entry for entry in reporter.entries if entry.message.startswith("서울:")]
    assert len(lines) == 1
    assert lines[0].severity is Severity.WARNING
    assert "page 2 unavailable, resumes at page 2" in (lines[0].details or "")
