"""Name-keyed duplicate index for one collection run."""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass, field

from .models import CollectedOrganization


def normalize_name(name: str) -> str:
    """Return the dedup key of an organization name.

    The key is the display name alone (NFKC, trimmed, inner whitespace
    collapsed, casefolded). Two distinct organizations sharing a name in
    different regions therefore collide.
    """
    text = unicodedata.normalize("NFKC", name or "")
    return " ".join(text.split()).casefold()


@dataclass
class DedupOutcome:
    """Records that survived a partition plus what was dropped and why."""

    accepted: list[CollectedOrganization] = field(default_factory=list)
    duplicates: int = 0
    invalid: int = 0
    over_budget: int = 0
    first_over_budget: int | None = None


class DedupIndex:
    """In-memory set of persisted name keys, seeded once per run."""

    def __init__(self, names: Iterable[str] = (), *, enabled: bool = True) -> None:
        self._enabled = enabled
        self._keys: set[str] = set()
        if enabled:
            self.extend(names)

    @classmethod
    def disabled(cls) -> "DedupIndex":
        return cls(enabled=False)

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._keys

    def extend(self, names: Iterable[str]) -> None:
        if not self._enabled:
            return
        for name in names:
            key = normalize_name(name)
            if key:
                self._keys.add(key)

    def add_all(self, organizations: Iterable[CollectedOrganization]) -> None:
        self.extend(org.name for org in organizations)

    def partition(
        self, organizations: Iterable[CollectedOrganization], *, budget: int | None = None
    ) -> DedupOutcome:
        """Split a batch into accepted records and drop counts.

        Empty names are invalid; names already indexed, or seen earlier in
        the same batch, are duplicates; accepted records beyond ``budget``
        are rejected and the position of the first one is kept in
        ``first_over_budget``. The index itself is not modified.
        """
        outcome = DedupOutcome()
        batch_keys: set[str] = set()
        for position, org in enumerate(organizations):
            key = normalize_name(org.name)
            if not key:
                outcome.invalid += 1
                continue
            if self._enabled and (key in self._keys or key in batch_keys):
                outcome.duplicates += 1
                continue
            if budget is not None and len(outcome.accepted) >= budget:
                if outcome.first_over_budget is None:
                    outcome.first_over_budget = position
                outcome.over_budget += 1
                continue
            batch_keys.add(key)
            outcome.accepted.append(org)
        return outcome
