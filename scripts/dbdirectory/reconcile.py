"""Full-scan reconciliation of the host's imported identities.

Every external row is matched to the host's local identity by username;
email, first name and last name present in the row overwrite differing
local values. The host identity cache is cleared afterwards. The whole pass
runs in one host transaction: on failure it is rolled back and no partial
counts are reported.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from scripts.dbdirectory.db import IdentityRow
from scripts.dbdirectory.host import HostSession, LocalIdentity

logger = logging.getLogger("dbdirectory.reconcile")

# row column -> local identity attribute
SYNCED_FIELDS = (
    ("email", "email"),
    ("lastName", "last_name"),
    ("firstName", "first_name"),
)


@dataclass
class SyncResult:
    added: int = 0
    updated: int = 0
    removed: int = 0
    failed: int = 0

    @property
    def status(self) -> str:
        status = f"{self.added} imported users, {self.updated} updated users"
        if self.removed:
            status += f", {self.removed} removed users"
        if self.failed:
            status += f", {self.failed} users failed sync! See server log for more details"
        return status


class Reconciler:
    def __init__(self, session_factory: Callable[[], HostSession], instance_id: str) -> None:
        self._session_factory = session_factory
        self.instance_id = instance_id

    def sync(self, realm_id: str) -> SyncResult:
        """Reconcile every external identity of ``realm_id`` against the host."""
        result = SyncResult()
        started = time.monotonic()
        session = self._session_factory()
        try:
            with session.transaction():
                realm = session.realm(realm_id)
                provider = session.provider(self.instance_id)
                rows = provider.list_all()
                logger.info(
                    "Number of users to sync: %d",
                    len(rows),
                    extra={"instance_id": self.instance_id, "realm": realm_id},
                )

                skipped = 0
                for row in rows:
                    local = session.local_identity(realm, row.get("username"))
                    if local is None:
                        skipped += 1
                        continue
                    if _apply(row, local):
                        result.updated += 1

                logger.info("Syncing of %d users completed, %d not yet imported", len(rows), skipped)

                if session.identity_cache is not None:
                    session.identity_cache.clear()
        except Exception as exc:
            logger.error(
                "Sync failed: %s",
                exc,
                exc_info=True,
                extra={"instance_id": self.instance_id, "realm": realm_id},
            )
            result = SyncResult(failed=1)
        finally:
            session.close()

        logger.info(
            result.status,
            extra={
                "instance_id": self.instance_id,
                "realm": realm_id,
                "updated": result.updated,
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return result

    def sync_since(self, since: Optional[datetime], realm_id: str) -> SyncResult:
        # No change tracking in the external schema; always a full scan.
        return self.sync(realm_id)


def _apply(row: IdentityRow, local: LocalIdentity) -> bool:
    changed = False
    for column, attr in SYNCED_FIELDS:
        value = row.get(column)
        if value is None:
            continue
        value = value.strip()
        if value != getattr(local, attr):
            logger.debug("SYNC %s for %s from federation", attr, row.get("username"))
            setattr(local, attr, value)
            changed = True
    return changed
