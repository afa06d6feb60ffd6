"""CSV organization/contact stores, JSON checkpoints and the persistence sink."""

from __future__ import annotations

import csv
import json
import os
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import date
from pathlib import Path

from .errors import ConfigError, StoreError
from .models import CollectedOrganization, ContactRecord, CrawlCheckpoint, CrawlTarget, EmailStatus

ORGANIZATION_FIELDS = [
    "name",
    "type",
    "address",
    "phone",
    "homepage",
    "representative",
    "region",
    "category",
    "collection_date",
    "email_status",
]
CONTACT_FIELDS = ["name", "email", "category"]

ORGANIZATIONS_FILE = "organizations.csv"
CONTACTS_FILE = "contacts.csv"
CHECKPOINTS_FILE = "checkpoints.json"


def _ensure_csv(path: Path, fields: Sequence[str]) -> None:
    """Create a CSV file holding only the header row when it does not exist."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists() and path.stat().st_size > 0:
            return
        with path.open("w", newline="", encoding="utf-8") as file_obj:
            csv.DictWriter(file_obj, fieldnames=list(fields)).writeheader()
    except OSError as exc:
        raise ConfigError(f"Data directory is not writable: {path.parent} ({exc})") from exc


def _append_csv(path: Path, fields: Sequence[str], rows: Iterable[dict[str, str]]) -> int:
    count = 0
    with path.open("a", newline="", encoding="utf-8") as file_obj:
        writer = csv.DictWriter(file_obj, fieldnames=list(fields))
        for row in rows:
            writer.writerow(row)
            count += 1
    return count


def _read_csv(path: Path) -> list[dict[str, str]]:
    if not path.exists():
        return []
    with path.open(newline="", encoding="utf-8") as file_obj:
        return [dict(row) for row in csv.DictReader(file_obj)]


def _rewrite_csv(path: Path, fields: Sequence[str], rows: Iterable[dict[str, str]]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", newline="", encoding="utf-8") as file_obj:
        writer = csv.DictWriter(file_obj, fieldnames=list(fields))
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
    os.replace(tmp, path)


@dataclass(frozen=True)
class CategoryStats:
    category: str
    total: int
    pending: int


@dataclass(frozen=True)
class StoreStats:
    """Counts over the organization store."""

    total: int = 0
    with_homepage: int = 0
    extracted: int = 0
    pending: int = 0
    failed: int = 0
    by_category: tuple[CategoryStats, ...] = field(default_factory=tuple)


class CsvOrganizationStore:
    """Append-only organization table; row 1 is the header."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def ensure_header(self) -> None:
        _ensure_csv(self.path, ORGANIZATION_FIELDS)

    def read_rows(self) -> list[dict[str, str]]:
        return _read_csv(self.path)

    def existing_names(self) -> list[str]:
        return [row.get("name", "") for row in self.read_rows()]

    def append_rows(self, rows: Sequence[dict[str, str]]) -> int:
        self.ensure_header()
        return _append_csv(self.path, ORGANIZATION_FIELDS, rows)

    def pending_targets(self, categories: Sequence[str] = ()) -> list[CrawlTarget]:
        """Rows with a homepage whose email is still pending, in file order."""
        wanted = set(categories)
        targets: list[CrawlTarget] = []
        for offset, row in enumerate(self.read_rows()):
            homepage = (row.get("homepage") or "").strip()
            if not homepage or row.get("email_status") != EmailStatus.PENDING.value:
                continue
            category = row.get("category", "")
            if wanted and category not in wanted:
                continue
            targets.append(
                CrawlTarget(
                    name=row.get("name", ""),
                    homepage=homepage,
                    category=category,
                    row_index=offset + 2,
                )
            )
        return targets

    def update_status(self, row_index: int, status: EmailStatus) -> None:
        """Rewrite the email status cell of one row (1-based, header is row 1)."""
        rows = self.read_rows()
        position = row_index - 2
        if not 0 <= position < len(rows):
            raise StoreError(f"Row {row_index} does not exist in {self.path}.")
        rows[position]["email_status"] = EmailStatus(status).value
        _rewrite_csv(self.path, ORGANIZATION_FIELDS, rows)

    def reset_failed(self) -> int:
        """Turn every failed row back into a pending one; return how many."""
        rows = self.read_rows()
        count = 0
        for row in rows:
            if row.get("email_status") == EmailStatus.FAILED.value:
                row["email_status"] = EmailStatus.PENDING.value
                count += 1
        if count:
            _rewrite_csv(self.path, ORGANIZATION_FIELDS, rows)
        return count

    def stats(self) -> StoreStats:
        rows = self.read_rows()
        totals: dict[str, list[int]] = {}
        counts = {status: 0 for status in EmailStatus}
        with_homepage = 0
        for row in rows:
            status = row.get("email_status", "")
            if status in {item.value for item in EmailStatus}:
                counts[EmailStatus(status)] += 1
            if (row.get("homepage") or "").strip():
                with_homepage += 1
            bucket = totals.setdefault(row.get("category", ""), [0, 0])
            bucket[0] += 1
            if status == EmailStatus.PENDING.value:
                bucket[1] += 1
        by_category = sorted(
            (CategoryStats(category, total, pending) for category, (total, pending) in totals.items() if pending),
            key=lambda item: item.pending,
            reverse=True,
        )
        return StoreStats(
            total=len(rows),
            with_homepage=with_homepage,
            extracted=counts[EmailStatus.EXTRACTED],
            pending=counts[EmailStatus.PENDING],
            failed=counts[EmailStatus.FAILED],
            by_category=tuple(by_category),
        )


class CsvContactStore:
    """Append-only contact table."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def ensure_header(self) -> None:
        _ensure_csv(self.path, CONTACT_FIELDS)

    def append(self, contacts: Sequence[ContactRecord]) -> int:
        if not contacts:
            return 0
        self.ensure_header()
        return _append_csv(self.path, CONTACT_FIELDS, (asdict(item) for item in contacts))

    def read(self) -> list[ContactRecord]:
        return [
            ContactRecord(row.get("name", ""), row.get("email", ""), row.get("category", ""))
            for row in _read_csv(self.path)
        ]


class JsonCheckpointStore:
    """Checkpoints keyed by source and region, stored in one JSON object."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, dict[str, dict[str, object]]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except ValueError as exc:
            raise StoreError(f"Malformed checkpoint file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Malformed checkpoint file {self.path}: expected an object.")
        return data

    def _dump(self, data: dict[str, dict[str, dict[str, object]]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, source_id: str, region: str) -> CrawlCheckpoint | None:
        entry = self._load().get(source_id, {}).get(region)
        if not isinstance(entry, dict):
            return None
        return CrawlCheckpoint(
            source_id=source_id,
            region=region,
            last_page=int(entry.get("last_page", 1)),
            last_updated_at=str(entry.get("last_updated_at", "")),
        )

    def save(self, checkpoint: CrawlCheckpoint) -> None:
        data = self._load()
        data.setdefault(checkpoint.source_id, {})[checkpoint.region] = {
            "last_page": checkpoint.last_page,
            "last_updated_at": checkpoint.last_updated_at,
        }
        self._dump(data)

    def clear(self, source_id: str, region: str | None = None) -> None:
        data = self._load()
        if source_id not in data:
            return
        if region is None:
            del data[source_id]
        else:
            data[source_id].pop(region, None)
            if not data[source_id]:
                del data[source_id]
        self._dump(data)


def email_status_for(org: CollectedOrganization) -> EmailStatus:
    if org.has_email:
        return EmailStatus.EXTRACTED
    if org.homepage.strip():
        return EmailStatus.PENDING
    return EmailStatus.NO_HOMEPAGE


class PersistenceSink:
    """Writes collected organizations, and contacts for known emails."""

    def __init__(self, organizations: CsvOrganizationStore, contacts: CsvContactStore) -> None:
        self.organizations = organizations
        self.contacts = contacts

    def existing_names(self) -> list[str]:
        return self.organizations.existing_names()

    def append(self, organizations: Sequence[CollectedOrganization], category: str) -> int:
        """Persist named organizations and return how many rows were written."""
        today = date.today().isoformat()
        named = [org for org in organizations if org.name.strip()]
        rows = [
            {
                "name": org.name,
                "type": org.type,
                "address": org.address,
                "phone": org.phone,
                "homepage": org.homepage,
                "representative": org.representative,
                "region": org.region,
                "category": category,
                "collection_date": org.collected_at or today,
                "email_status": email_status_for(org).value,
            }
            for org in named
        ]
        written = self.organizations.append_rows(rows) if rows else 0
        self.contacts.append(
            [ContactRecord(org.name, org.email, category) for org in named if org.has_email]
        )
        return written


@dataclass(frozen=True)
class Stores:
    organizations: CsvOrganizationStore
    contacts: CsvContactStore
    checkpoints: JsonCheckpointStore

    @property
    def sink(self) -> PersistenceSink:
        return PersistenceSink(self.organizations, self.contacts)


def open_stores(data_dir: str | Path) -> Stores:
    """Return the stores of a data directory, creating header rows as needed."""
    root = Path(data_dir)
    stores = Stores(
        organizations=CsvOrganizationStore(root / ORGANIZATIONS_FILE),
        contacts=CsvContactStore(root / CONTACTS_FILE),
        checkpoints=JsonCheckpointStore(root / CHECKPOINTS_FILE),
    )
    stores.organizations.ensure_header()
    stores.contacts.ensure_header()
    return stores
