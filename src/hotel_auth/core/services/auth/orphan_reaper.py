"""Reconciliation of local accounts whose external link never completed."""

from datetime import timedelta

from loguru import logger

from src.hotel_auth.core.errors import ValidationError
from src.hotel_auth.core.storage.credential_store import CredentialStore, OrphanPolicy


class OrphanReaper:
    """Soft-deletes unlinked local accounts older than a grace period.

    Only the credential store is touched; the external provider is never
    called. Sweeping is idempotent because already deleted users no longer
    match.
    """

    def __init__(self, store: CredentialStore, policy: OrphanPolicy = "any_unlinked"):
        self._store = store
        self._policy = policy

    @property
    def policy(self) -> OrphanPolicy:
        return self._policy

    def sweep(self, older_than: timedelta) -> int:
        """Soft-delete orphans created before ``now - older_than``.

        Returns:
            Number of users soft-deleted by this sweep
        """
        if older_than < timedelta(0):
            raise ValidationError("olderThan must not be negative")

        count = self._store.mark_orphaned_older_than(older_than, self._policy)
        logger.bind(
            policy=self._policy,
            older_than_minutes=older_than.total_seconds() / 60,
            cleaned=count,
        ).info("Orphaned users swept")
        return count
