"""
Local Story Storage
In-memory content store with the same interface as FirestoreStoryStore.
Used for local development runs and tests when Firestore is unavailable.
"""

import copy
import uuid
import operator
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import StoryNotFoundError


OPERATORS = {
    '==': operator.eq,
    '!=': operator.ne,
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
}


def _matches(story: Dict[str, Any], filters) -> bool:
    for field, op, value in filters:
        if op == 'in':
            if story.get(field) not in value:
                return False
            continue
        if op == 'array_contains':
            if value not in (story.get(field) or []):
                return False
            continue
        # Like Firestore, documents without the field never match
        if field not in story:
            return False
        if not OPERATORS[op](story[field], value):
            return False
    return True


class InMemoryStoryStore:
    """Dict-backed story store. Returned documents are copies."""

    def __init__(self, stories: Optional[List[Dict[str, Any]]] = None):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        for story in stories or []:
            data = dict(story)
            story_id = data.pop('id', None) or uuid.uuid4().hex
            self._docs[story_id] = copy.deepcopy(data)

    def __len__(self) -> int:
        return len(self._docs)

    def query(
        self,
        filters: Optional[List[Tuple[str, str, Any]]] = None,
        order_by: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        with self._lock:
            results = [
                {'id': story_id, **copy.deepcopy(data)}
                for story_id, data in self._docs.items()
                if _matches(data, filters or [])
            ]

        if order_by:
            field, direction = order_by
            results = [r for r in results if field in r]
            results.sort(key=lambda r: r[field], reverse=(direction == 'desc'))

        if limit:
            results = results[:limit]
        return results

    def get(self, story_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._docs.get(story_id)
            return {'id': story_id, **copy.deepcopy(data)} if data is not None else None

    def insert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        story_id = uuid.uuid4().hex
        with self._lock:
            self._docs[story_id] = copy.deepcopy(data)
        return {'id': story_id, **copy.deepcopy(data)}

    def update(self, story_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            if story_id not in self._docs:
                raise StoryNotFoundError(story_id)
            self._docs[story_id].update(copy.deepcopy(data))

    def update_in_transaction(
        self,
        story_id: str,
        mutate: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]
    ) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
        with self._lock:
            current = self.get(story_id)
            if current is None:
                raise StoryNotFoundError(story_id)
            updates = mutate(current)
            if updates:
                self.update(story_id, updates)
            return current, updates

    def batch_update(self, updates: List[Tuple[str, Dict[str, Any]]]) -> int:
        with self._lock:
            for story_id, data in updates:
                self.update(story_id, data)
        return len(updates)
