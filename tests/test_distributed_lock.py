"""
Tests for the Firestore-backed job lock.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from newswatch.distributed_lock import DistributedLock
from newswatch.errors import LockAcquireError


@pytest.fixture(autouse=True)
def no_retry_transactions(monkeypatch):
    monkeypatch.setattr('google.cloud.firestore.transactional', lambda func: func)


def lock_db(owner=None, expires_in=None):
    db = MagicMock()
    lock_doc = MagicMock()
    lock_doc.exists = owner is not None
    lock_doc.to_dict.return_value = {
        'owner': owner,
        'expires_at': datetime.now(timezone.utc) + timedelta(seconds=expires_in or 0),
    }
    db.collection.return_value.document.return_value.get.return_value = lock_doc
    return db


class TestDistributedLock:

    def test_without_firestore_always_acquires(self, monkeypatch):
        monkeypatch.setattr('newswatch.distributed_lock.get_firestore_client', lambda: None)
        lock = DistributedLock('retroactive_dedup')
        assert lock.acquire() is True
        lock.release()

    def test_free_lock_acquired(self):
        db = lock_db()
        assert DistributedLock('retroactive_dedup', owner='me', db=db).acquire() is True
        db.transaction.return_value.set.assert_called_once()

    def test_held_lock_refused(self):
        db = lock_db(owner='other-host', expires_in=600)
        assert DistributedLock('retroactive_dedup', owner='me', db=db).acquire() is False

    def test_expired_lock_taken_over(self):
        db = lock_db(owner='other-host', expires_in=-60)
        assert DistributedLock('retroactive_dedup', owner='me', db=db).acquire() is True

    def test_own_lock_reacquired(self):
        db = lock_db(owner='me', expires_in=600)
        assert DistributedLock('retroactive_dedup', owner='me', db=db).acquire() is True

    def test_context_manager_raises_when_held(self):
        db = lock_db(owner='other-host', expires_in=600)
        with pytest.raises(LockAcquireError):
            with DistributedLock('retroactive_dedup', owner='me', db=db):
                pass

    def test_context_manager_releases(self):
        db = lock_db()
        with DistributedLock('retroactive_dedup', owner='me', db=db):
            pass
        db.collection.return_value.document.return_value.delete.assert_called_once()
