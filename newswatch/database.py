"""
Firestore Database Module
Story collection access for the deduplication engine: filtered queries,
single-document reads and writes, transactional read-modify-write, batched updates.
"""

import os
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import datetime, timedelta, timezone
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .errors import StoryNotFoundError


STORIES_COLLECTION = 'stories'

# Firestore batch limit is 500
BATCH_SIZE = 400

Filter = Tuple[str, str, Any]


def get_db() -> firestore.Client:
    """Get Firestore client."""
    # In Cloud Functions, this uses default credentials
    # For local development, set GOOGLE_APPLICATION_CREDENTIALS or FIRESTORE_EMULATOR_HOST
    project = os.environ.get('GCP_PROJECT_ID')
    return firestore.Client(project=project) if project else firestore.Client()


def _doc_to_story(doc) -> Dict[str, Any]:
    return {'id': doc.id, **doc.to_dict()}


class FirestoreStoryStore:
    """Content store over a Firestore collection of story documents."""

    def __init__(self, db: Optional[firestore.Client] = None, collection: str = STORIES_COLLECTION):
        self.db = db or get_db()
        self.collection_name = collection

    @property
    def collection(self):
        return self.db.collection(self.collection_name)

    # ============ READS ============

    def query(
        self,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Query stories.

        Args:
            filters: (field, op, value) tuples, e.g. ('ingested_at', '>', cutoff)
            order_by: (field, 'asc' | 'desc')
            limit: Maximum documents to return

        Returns:
            List of story dicts with 'id'
        """
        query = self.collection
        for field, op, value in filters or []:
            query = query.where(filter=FieldFilter(field, op, value))

        if order_by:
            field, direction = order_by
            query = query.order_by(
                field,
                direction=firestore.Query.DESCENDING if direction == 'desc' else firestore.Query.ASCENDING
            )

        if limit:
            query = query.limit(limit)

        return [_doc_to_story(doc) for doc in query.stream()]

    def get(self, story_id: str) -> Optional[Dict[str, Any]]:
        """Get story by ID."""
        doc = self.collection.document(story_id).get()
        return _doc_to_story(doc) if doc.exists else None

    # ============ WRITES ============

    def insert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a story with an auto-generated ID."""
        doc_ref = self.collection.document()
        doc_ref.set(data)
        return {'id': doc_ref.id, **data}

    def update(self, story_id: str, data: Dict[str, Any]) -> None:
        """Apply a partial update; raises if the story does not exist."""
        self.collection.document(story_id).update(data)

    def update_in_transaction(
        self,
        story_id: str,
        mutate: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]
    ) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
        """
        Atomic read-modify-write of one story.

        `mutate` receives the current story and returns the partial update to
        apply, or None to leave it unchanged. Firestore retries the whole
        function on contention, so `mutate` must be free of side effects.

        Returns:
            (story as read, update applied or None)
        """
        doc_ref = self.collection.document(story_id)

        @firestore.transactional
        def apply_update(transaction, doc_ref):
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise StoryNotFoundError(story_id)

            current = _doc_to_story(snapshot)
            updates = mutate(current)
            if updates:
                transaction.update(doc_ref, updates)
            return current, updates

        trans = self.db.transaction()
        return apply_update(trans, doc_ref)

    def batch_update(self, updates: List[Tuple[str, Dict[str, Any]]]) -> int:
        """
        Apply many partial updates with batched commits.

        Returns:
            Number of documents updated
        """
        batch = self.db.batch()
        count = 0

        for story_id, data in updates:
            batch.update(self.collection.document(story_id), data)
            count += 1

            if count % BATCH_SIZE == 0:
                batch.commit()
                batch = self.db.batch()

        if count % BATCH_SIZE != 0:
            batch.commit()

        return count


# ============ ACTIVE STORY READS ============

def get_top_stories(store, hours: int = 24, limit: int = 12) -> List[Dict[str, Any]]:
    """
    Highest-impact live stories ingested in the last `hours`.

    Duplicates are filtered in memory (Firestore cannot combine the inequality
    on ingested_at with ordering on pe_impact_score).
    """
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
    stories = store.query(
        [('ingested_at', '>', cutoff)],
        order_by=('ingested_at', 'desc')
    )

    active = [s for s in stories if not s.get('is_duplicate')]
    active.sort(key=lambda s: s.get('pe_impact_score') or 0, reverse=True)
    return active[:limit]
