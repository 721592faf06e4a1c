"""Push host-side profile edits back to the external database."""

from __future__ import annotations

import logging

from scripts.dbdirectory.host import HostSession, ProfileEvent

logger = logging.getLogger("dbdirectory.events")

LISTENER_ID = "profile-update"
UPDATE_PROFILE = "UPDATE_PROFILE"


class ProfileUpdateListener:
    """Writes an email change made in the host to the external database."""

    def __init__(self, session: HostSession, instance_id: str) -> None:
        self.session = session
        self.instance_id = instance_id

    def on_event(self, event: ProfileEvent) -> None:
        logger.debug("Update event received for user %s", event.user_id)
        if event.type != UPDATE_PROFILE:
            return
        if not event.details or not event.realm_id or not event.user_id:
            return

        updated_email = event.details.get("updated_email")
        if updated_email is None:
            return

        realm = self.session.realm(event.realm_id)
        identity = self.session.identity_by_id(realm, event.user_id)
        if identity is None:
            logger.warning("Profile update for unknown user %s", event.user_id)
            return

        provider = self.session.provider(self.instance_id)
        if provider.repository.update_email(identity.username, updated_email):
            logger.info(
                "Email changed for user %s [%s]",
                event.user_id,
                identity.username,
                extra={"instance_id": self.instance_id, "username": identity.username},
            )

    def close(self) -> None:
        pass
