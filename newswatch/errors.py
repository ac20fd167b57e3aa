"""
Dedup Errors
Exceptions raised by the deduplication engine and its collaborators.
"""


class DedupError(Exception):
    """Base exception for all deduplication errors."""
    pass


class ConfigError(DedupError):
    """Raised when a configuration value cannot be parsed."""
    pass


class StoryNotFoundError(DedupError):
    """Raised when a story document does not exist."""

    def __init__(self, story_id: str):
        self.story_id = story_id
        super().__init__(f"Story not found: {story_id}")


class MergeConflictError(DedupError):
    """
    Raised when a merge would corrupt the duplicate bookkeeping.

    Examples:
    - Merging a story into itself
    - Merging a loser that is already a duplicate of another story
    """
    pass


class MergeChainError(DedupError):
    """Raised when a merged_into chain loops or is too deep to resolve."""

    def __init__(self, story_id: str, chain):
        self.story_id = story_id
        self.chain = list(chain)
        super().__init__(
            f"Cannot resolve canonical story for {story_id}: {' -> '.join(self.chain)}"
        )


class LockAcquireError(DedupError):
    """Raised when lock cannot be acquired."""
    pass
