"""Identity lookups, listings and credential operations over the template set."""

from __future__ import annotations

import logging
from typing import Optional

from scripts.dbdirectory.config import QueryTemplates
from scripts.dbdirectory.db import Database, IdentityRow, read_int, read_rows
from scripts.dbdirectory.errors import DirectoryUnavailable
from scripts.dbdirectory.paging import Pageable

logger = logging.getLogger("dbdirectory.repository")


class IdentityRepository:
    def __init__(self, db: Database, templates: QueryTemplates) -> None:
        self.db = db
        self.templates = templates

    # ------------------------------------------------------------------
    # Counting
    # ------------------------------------------------------------------

    def count_all(self) -> int:
        return self.db.execute(self.templates.count, None, read_int) or 0

    def count_matching(self, term: str) -> int:
        search = self.templates.find_by_search_term.rstrip().rstrip(";")
        # own lines, so a trailing "--" comment in the template stays closed
        query = f"SELECT COUNT(*) FROM (\n{search}\n) matched"
        return self.db.execute(query, None, read_int, term) or 0

    def count(self, term: Optional[str] = None) -> int:
        if _is_blank(term):
            return self.count_all()
        return self.count_matching(term)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_id(self, identity_id: str) -> Optional[IdentityRow]:
        rows = self.db.execute(self.templates.find_by_id, None, read_rows, identity_id) or []
        return rows[0] if rows else None

    def find_by_login_name(self, name: str, allow_email_login: bool) -> Optional[IdentityRow]:
        if allow_email_login:
            template = self.templates.find_by_username_or_email
        else:
            template = self.templates.find_by_username
        rows = self.db.execute(template, None, read_rows, name) or []
        return rows[0] if rows else None

    def list_all(self, pageable: Optional[Pageable] = None) -> list[IdentityRow]:
        return self.db.execute(self.templates.list_all, pageable, read_rows) or []

    def fetch_all(self) -> list[IdentityRow]:
        """Every identity row; a failed query raises instead of yielding ``[]``."""
        rows = self.db.execute(self.templates.list_all, None, read_rows)
        if rows is None:
            raise DirectoryUnavailable("Listing all identities failed, see previous error")
        return rows

    def search(self, term: Optional[str], pageable: Optional[Pageable] = None) -> list[IdentityRow]:
        if _is_blank(term):
            return self.list_all(pageable)
        return self.db.execute(self.templates.find_by_search_term, pageable, read_rows, term) or []

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def validate_credential(self, username: str, password: str, allow_email_login: bool) -> bool:
        if allow_email_login:
            template = self.templates.find_password_hash
        else:
            template = self.templates.find_password_hash_username_only

        rows = self.db.execute(template, None, read_rows, username) or []
        if not rows:
            logger.info("No stored credential", extra={"username": username})
            return False

        stored = rows[0]
        validated = self.templates.scheme.validate(password, stored.get("salt"), stored.get("hash"))
        logger.info("Validation %s for user %s", validated, username, extra={"username": username})
        return validated

    def rotate_credential(self, username: str, password: str) -> bool:
        if not self.templates.scheme.accepts(password):
            logger.warning(
                "Rejected new credential for user %s: too long for %s",
                username,
                self.templates.hash_function,
                extra={"username": username},
            )
            return False
        record = self.templates.scheme.generate(password)
        logger.info("Updating credentials for user %s", username, extra={"username": username})
        return self.db.execute_update(
            self.templates.update_credentials, record.hash, record.salt, username
        )

    def update_email(self, username: str, new_email: str) -> bool:
        logger.debug("Updating email address for user %s", username, extra={"username": username})
        return self.db.execute_update(self.templates.update_email_address, new_email, username)

    def allows_local_delete(self) -> bool:
        return self.templates.allow_local_delete


def _is_blank(term: Optional[str]) -> bool:
    return term is None or not term.strip()
