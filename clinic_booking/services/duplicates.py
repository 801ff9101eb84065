"""Find and remove duplicate appointments left by repeated or racing bookings.

Three passes run in order over whatever the previous pass left:

* exact: identical patient, contact, doctor, date, time and slot label;
* similar: same doctor/date/time with a similar name or shared phone/email;
* overlapping: same doctor/date, same-looking patient, overlapping slot ranges.

Cancelled appointments no longer hold a slot and are left alone. Every pass
keeps the earliest created appointment. Decisions are written to the audit
log before anything is deleted, and each delete commits on its own, so an
interrupted run can simply be started again.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass, field
from itertools import groupby
from typing import Any, Iterable

from flask import current_app

from clinic_booking.services import audit
from clinic_booking.services.appointments import count_grouped_by, delete_appointment
from clinic_booking.services.clock import parse_hhmm
from clinic_booking.services.database import connection
from clinic_booking.services.errors import InvalidTimeFormat, NotFound, PersistenceError

EXACT_FIELDS = ("patient_name", "doctor_id", "date", "time", "time_slot", "phone", "email")
SIMILARITY_THRESHOLD = 0.7

_SPACES_RE = re.compile(r"\s+")


@dataclass
class ReconciliationSummary:
    exact: int = 0
    similar: int = 0
    overlapping: int = 0
    dry_run: bool = False

    @property
    def total(self) -> int:
        return self.exact + self.similar + self.overlapping

    def to_dict(self) -> dict[str, Any]:
        return {
            "exact": self.exact,
            "similar": self.similar,
            "overlapping": self.overlapping,
            "total": self.total,
            "dryRun": self.dry_run,
        }


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str | None, b: str | None) -> float:
    """``(L - editDistance) / L`` with ``L`` the longer length."""

    a = a or ""
    b = b or ""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    return (longest - levenshtein(a, b)) / longest


def normalize_name(name: str | None) -> str:
    return _SPACES_RE.sub(" ", (name or "").strip().lower())


def is_similar_name(a: str | None, b: str | None) -> bool:
    left, right = normalize_name(a), normalize_name(b)
    if not left or not right:
        return False
    if left == right or left in right or right in left:
        return True
    return similarity(left, right) > SIMILARITY_THRESHOLD


def _same_value(a: str | None, b: str | None) -> bool:
    return bool(a) and a == b


def looks_like_same_patient(a: sqlite3.Row, b: sqlite3.Row) -> bool:
    return (
        is_similar_name(a["patient_name"], b["patient_name"])
        or _same_value(a["phone"], b["phone"])
        or _same_value(a["email"], b["email"])
    )


def _minutes(value: str | None) -> int | None:
    try:
        return parse_hhmm(value)
    except InvalidTimeFormat:
        return None


def _slot_range(time_slot: str | None) -> tuple[int, int] | None:
    if not time_slot:
        return None
    parts = time_slot.split(" - ")
    if len(parts) != 2:
        return None
    start, end = _minutes(parts[0]), _minutes(parts[1])
    if start is None or end is None:
        return None
    return start, end


def times_overlap(a: sqlite3.Row, b: sqlite3.Row) -> bool:
    t1, t2 = _minutes(a["time"]), _minutes(b["time"])
    if (t1 is not None and t1 == t2) or a["time"] == b["time"]:
        return True
    slot1, slot2 = _slot_range(a["time_slot"]), _slot_range(b["time_slot"])
    if slot1 and slot2:
        return slot1[0] < slot2[1] and slot2[0] < slot1[1]
    return False


def _age_key(row: sqlite3.Row) -> tuple[str, str]:
    return (row["created_at"] or "", row["id"])


def _earliest_first(rows: Iterable[sqlite3.Row]) -> list[sqlite3.Row]:
    return sorted(rows, key=_age_key)


@dataclass
class _Run:
    dry_run: bool
    handled: set[str] = field(default_factory=set)

    def load(self) -> list[sqlite3.Row]:
        with connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM appointments
                WHERE status <> 'CANCELLED'
                ORDER BY date, doctor_id, time, created_at, id
                """
            ).fetchall()
        return [row for row in rows if row["id"] not in self.handled]

    def resolve(
        self,
        pass_name: str,
        group_key: str,
        keep: sqlite3.Row,
        drop: list[sqlite3.Row],
        reason: str,
    ) -> int:
        """Audit, then delete ``drop``. Returns how many were removed."""

        drop_ids = [row["id"] for row in drop]
        audit.append_entry(
            pass_name,
            group_key,
            keep["id"],
            drop_ids,
            f"dry-run: {reason}" if self.dry_run else reason,
        )
        removed = 0
        for appt_id in drop_ids:
            self.handled.add(appt_id)
            if self.dry_run:
                removed += 1
                continue
            try:
                delete_appointment(appt_id)
                removed += 1
            except NotFound:
                current_app.logger.warning("[%s] %s was already deleted", pass_name, appt_id)
            except PersistenceError as exc:
                current_app.logger.error("[%s] could not delete %s: %s", pass_name, appt_id, exc.reason)
        return removed


def _exact_pass(run: _Run) -> int:
    removed = 0
    groups = count_grouped_by(EXACT_FIELDS, active_only=True)
    current_app.logger.info("[exact] %d duplicate set(s) found", len(groups))
    where = " AND ".join(f"{name} IS ?" for name in EXACT_FIELDS)
    for group in groups:
        key = group["key"]
        with connection() as conn:
            members = conn.execute(
                f"SELECT * FROM appointments WHERE status <> 'CANCELLED' AND {where}",
                [key[name] for name in EXACT_FIELDS],
            ).fetchall()
        members = _earliest_first(row for row in members if row["id"] not in run.handled)
        if len(members) < 2:
            continue
        group_key = "|".join(str(key[name] or "") for name in EXACT_FIELDS)
        removed += run.resolve("exact", group_key, members[0], members[1:], "exact duplicate")
    return removed


def _slot_key(row: sqlite3.Row) -> tuple[str, str, str]:
    return (row["date"], row["doctor_id"], row["time"])


def _day_key(row: sqlite3.Row) -> tuple[str, str]:
    return (row["date"], row["doctor_id"])


def _similar_pairs(rows: list[sqlite3.Row]) -> list[tuple[float, str, sqlite3.Row, sqlite3.Row]]:
    pairs = []
    for key, members in groupby(sorted(rows, key=_slot_key), key=_slot_key):
        members = list(members)
        for i, first in enumerate(members):
            for second in members[i + 1 :]:
                if looks_like_same_patient(first, second):
                    score = similarity(
                        normalize_name(first["patient_name"]), normalize_name(second["patient_name"])
                    )
                    pairs.append((score, "|".join(key), first, second))
    # Highest similarity first; ties keep scan order.
    pairs.sort(key=lambda pair: -pair[0])
    return pairs


def _similar_reason(score: float, first: sqlite3.Row, second: sqlite3.Row) -> str:
    if is_similar_name(first["patient_name"], second["patient_name"]):
        return f"similar name ({score:.2f})"
    if _same_value(first["phone"], second["phone"]):
        return "same phone"
    return "same email"


def _similar_pass(run: _Run) -> int:
    """Greedy pairing by similarity; rounds repeat until nothing is left to pair."""

    removed = 0
    while True:
        pairs = _similar_pairs(run.load())
        if not pairs:
            break
        current_app.logger.info("[similar] %d candidate pair(s)", len(pairs))
        touched: set[str] = set()
        for score, group_key, first, second in pairs:
            if first["id"] in touched or second["id"] in touched:
                continue
            touched.update((first["id"], second["id"]))
            keep, drop = _earliest_first((first, second))
            removed += run.resolve("similar", group_key, keep, [drop], _similar_reason(score, first, second))
    return removed


def _overlap_pass(run: _Run) -> int:
    """Walk each doctor/day in time order; rounds repeat until stable."""

    removed = 0
    while True:
        changed = False
        rows = run.load()
        for key, members in groupby(sorted(rows, key=_day_key), key=_day_key):
            members = sorted(members, key=lambda row: (_minutes(row["time"]) or 0, row["time"], *_age_key(row)))
            survivor = members[0]
            for nxt in members[1:]:
                if not looks_like_same_patient(survivor, nxt) or not times_overlap(survivor, nxt):
                    survivor = nxt
                    continue
                keep, drop = _earliest_first((survivor, nxt))
                removed += run.resolve("overlapping", "|".join(key), keep, [drop], "overlapping time slot")
                changed = True
                survivor = keep
        if not changed:
            break
    return removed


def run_reconciliation(*, dry_run: bool = False) -> ReconciliationSummary:
    """Run the exact, similar and overlapping passes in that order."""

    run = _Run(dry_run=dry_run)
    summary = ReconciliationSummary(dry_run=dry_run)
    current_app.logger.info("Duplicate reconciliation started%s", " (dry run)" if dry_run else "")
    summary.exact = _exact_pass(run)
    current_app.logger.info("[exact] removed %d", summary.exact)
    summary.similar = _similar_pass(run)
    current_app.logger.info("[similar] removed %d", summary.similar)
    summary.overlapping = _overlap_pass(run)
    current_app.logger.info("[overlapping] removed %d", summary.overlapping)
    current_app.logger.info("Duplicate reconciliation finished: %d removed", summary.total)
    return summary
