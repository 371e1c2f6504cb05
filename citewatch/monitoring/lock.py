"""Database lease that keeps monitoring batch runs from overlapping."""

import logging
import os
import socket
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from citewatch.database import as_utc, get_session, utcnow
from citewatch.models.notification import BatchRunLock

logger = logging.getLogger(__name__)

DEFAULT_LOCK_NAME = "citation_monitoring"


def _default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class BatchLock:
    """Advisory lease stored in ``batch_run_locks``.

    An expired lease may be taken over by another owner, so a crashed run
    blocks later runs for at most ``ttl_seconds``.  A live run calls
    ``renew`` between entries to keep its lease.
    """

    def __init__(
        self,
        name: str = DEFAULT_LOCK_NAME,
        ttl_seconds: int = 3600,
        owner: Optional[str] = None,
    ):
        self._name = name
        self._ttl = timedelta(seconds=ttl_seconds)
        self._owner = owner or _default_owner()

    @property
    def owner(self) -> str:
        return self._owner

    def acquire(self, now: Optional[datetime] = None) -> bool:
        """Take the lease; return False if another live owner holds it.

        An expired or self-held row is taken over with a conditional UPDATE
        keyed on the owner and expiry that were read, so only one of several
        concurrent acquirers wins.
        """
        now = as_utc(now) or utcnow()
        try:
            with get_session() as session:
                row = session.get(BatchRunLock, self._name)
                if row is None:
                    session.add(BatchRunLock(
                        name=self._name,
                        owner=self._owner,
                        acquired_at=now,
                        expires_at=now + self._ttl,
                    ))
                else:
                    if row.owner != self._owner and as_utc(row.expires_at) > now:
                        logger.warning(
                            "Batch lock %r held by %s until %s",
                            self._name, row.owner, as_utc(row.expires_at).isoformat(),
                        )
                        return False
                    previous_owner = row.owner
                    result = session.execute(
                        update(BatchRunLock)
                        .where(
                            BatchRunLock.name == self._name,
                            BatchRunLock.owner == row.owner,
                            BatchRunLock.expires_at == row.expires_at,
                        )
                        .values(owner=self._owner, acquired_at=now, expires_at=now + self._ttl)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        logger.warning("Batch lock %r was taken concurrently", self._name)
                        return False
                    if previous_owner != self._owner:
                        logger.warning("Took over expired batch lock from %s", previous_owner)
        except IntegrityError:
            logger.warning("Batch lock %r was taken concurrently", self._name)
            return False
        logger.debug("Batch lock %r acquired by %s", self._name, self._owner)
        return True

    def renew(self, now: Optional[datetime] = None) -> bool:
        """Push the expiry out by one TTL; return False if the lease was lost."""
        now = as_utc(now) or utcnow()
        with get_session() as session:
            result = session.execute(
                update(BatchRunLock)
                .where(BatchRunLock.name == self._name, BatchRunLock.owner == self._owner)
                .values(expires_at=now + self._ttl)
                .execution_options(synchronize_session=False)
            )
            renewed = result.rowcount == 1
        if not renewed:
            logger.error("Batch lock %r is no longer held by %s", self._name, self._owner)
        return renewed

    def release(self) -> None:
        """Drop the lease if this owner still holds it."""
        try:
            with get_session() as session:
                row = session.get(BatchRunLock, self._name)
                if row is not None and row.owner == self._owner:
                    session.delete(row)
        except Exception as exc:
            logger.error("Failed to release batch lock %r: %s", self._name, exc)
