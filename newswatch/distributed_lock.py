"""
Job Lock Module
Firestore lease that keeps two retroactive dedup runs from interleaving
across Cloud Function instances and local invocations.
"""

import socket
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from .errors import LockAcquireError


LOCKS_COLLECTION = 'locks'


def get_firestore_client():
    """Firestore client, or None when credentials/project are unavailable."""
    try:
        from google.cloud import firestore
        return firestore.Client()
    except Exception:
        return None


def _lease_active(lease: Optional[Dict[str, Any]], now: datetime) -> bool:
    expires = (lease or {}).get('expires_at')
    if not expires:
        return False
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires > now


class DistributedLock:
    """
    Lease stored at locks/<lock_name>, expiring after ttl_seconds.

    A lease held by the same owner can be re-taken, so a crashed run on
    the same host does not block its own restart until expiry.
    """

    def __init__(self, lock_name: str, owner: Optional[str] = None, ttl_seconds: int = 1800, db=None):
        """
        Args:
            lock_name: Lease document ID (e.g., 'retroactive_dedup')
            owner: Holder identity (defaults to the hostname)
            ttl_seconds: Lease lifetime in seconds (default 30 minutes)
            db: Firestore client; resolved from the environment when omitted
        """
        self.lock_name = lock_name
        self.owner = owner or socket.gethostname()
        self.ttl_seconds = ttl_seconds
        self.db = db if db is not None else get_firestore_client()

    @property
    def _ref(self):
        return self.db.collection(LOCKS_COLLECTION).document(self.lock_name)

    def acquire(self) -> bool:
        """
        Take the lease unless another owner holds an unexpired one.

        Returns:
            True if this owner now holds the lease
        """
        if not self.db:
            # Local development without Firestore
            return True

        from google.cloud import firestore

        now = datetime.now(timezone.utc)
        lease = {
            'owner': self.owner,
            'lock_name': self.lock_name,
            'acquired_at': firestore.SERVER_TIMESTAMP,
            'expires_at': now + timedelta(seconds=self.ttl_seconds),
        }

        @firestore.transactional
        def take_lease(transaction, lock_ref):
            snapshot = lock_ref.get(transaction=transaction)
            current = snapshot.to_dict() if snapshot.exists else None
            if _lease_active(current, now) and current.get('owner') != self.owner:
                return False
            transaction.set(lock_ref, lease)
            return True

        try:
            return take_lease(self.db.transaction(), self._ref)
        except Exception as e:
            # Fail open
            print(f"⚠️ Lock acquire error for {self.lock_name}: {e}")
            return True

    def release(self):
        if not self.db:
            return
        try:
            self._ref.delete()
        except Exception as e:
            print(f"⚠️ Lock release error for {self.lock_name}: {e}")

    def __enter__(self):
        if not self.acquire():
            raise LockAcquireError(f"Lock '{self.lock_name}' is already held")
        print(f"🔒 Acquired lock {self.lock_name} as {self.owner}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
