"""Append-only audit log of reconciliation decisions."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

import sqlalchemy as sa
from flask import current_app

from clinic_booking.extensions import db


@dataclass(frozen=True)
class AuditEntry:
    id: int
    pass_name: str
    group_key: str
    kept_id: str | None
    deleted_ids: list[str]
    reason: str
    ts: str

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "pass": self.pass_name,
            "groupKey": self.group_key,
            "keptId": self.kept_id,
            "deletedIds": list(self.deleted_ids),
            "reason": self.reason,
            "timestamp": self.ts,
        }


def append_entry(
    pass_name: str,
    group_key: str,
    kept_id: str | None,
    deleted_ids: Iterable[str],
    reason: str,
) -> None:
    deleted = list(deleted_ids)
    current_app.logger.info(
        "[%s] group=%s keep=%s delete=%s reason=%s",
        pass_name,
        group_key,
        kept_id,
        ",".join(deleted) or "-",
        reason,
    )
    session = db.session()
    try:
        session.execute(
            sa.text(
                """
                INSERT INTO reconciliation_audit(pass_name, group_key, kept_id, deleted_ids_json, reason, ts)
                VALUES (:pass_name, :group_key, :kept_id, :deleted, :reason, :ts)
                """
            ),
            {
                "pass_name": pass_name,
                "group_key": group_key,
                "kept_id": kept_id,
                "deleted": json.dumps(deleted),
                "reason": reason,
                "ts": datetime.now(timezone.utc).isoformat(),
            },
        )
        session.commit()
    finally:
        session.close()


def list_entries(limit: int = 100) -> list[AuditEntry]:
    session = db.session()
    try:
        rows = session.execute(
            sa.text(
                """
                SELECT id, pass_name, group_key, kept_id, deleted_ids_json, reason, ts
                FROM reconciliation_audit
                ORDER BY id DESC
                LIMIT :limit
                """
            ),
            {"limit": int(limit)},
        ).mappings().all()
    finally:
        session.close()
    return [
        AuditEntry(
            id=row["id"],
            pass_name=row["pass_name"],
            group_key=row["group_key"],
            kept_id=row["kept_id"],
            deleted_ids=json.loads(row["deleted_ids_json"] or "[]"),
            reason=row["reason"],
            ts=row["ts"],
        )
        for row in rows
    ]
