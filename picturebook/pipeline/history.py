"""
Append-only revision history over immutable Story snapshots.
"""

from __future__ import annotations

import logging

from picturebook.common import ValidationError
from picturebook.story_generation import Story

logger = logging.getLogger(__name__)


class RevisionHistory:
    """
    Snapshot stack whose last element is the current story.

    ``undo`` never removes the final remaining snapshot, so the post-generation
    result cannot be undone past. With ``max_depth`` set, committing beyond the cap
    drops the oldest snapshots, and the oldest retained one becomes the undo floor.
    """

    def __init__(self, *, max_depth: int | None = None) -> None:
        if max_depth is not None and max_depth < 1:
            raise ValueError("max_depth must be at least 1 when provided.")
        self._snapshots: list[Story] = []
        self._max_depth = max_depth

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def snapshots(self) -> tuple[Story, ...]:
        return tuple(self._snapshots)

    @property
    def max_depth(self) -> int | None:
        return self._max_depth

    def commit(self, story: Story) -> Story:
        """Append a fully-formed story as the new current snapshot."""
        if not story.is_complete:
            raise ValidationError(
                "Only complete stories (cover and every page illustrated) can be committed.",
                field="story",
            )
        self._snapshots.append(story)
        if self._max_depth is not None and len(self._snapshots) > self._max_depth:
            dropped = len(self._snapshots) - self._max_depth
            del self._snapshots[:dropped]
            logger.debug("History cap reached; dropped %d oldest snapshot(s).", dropped)
        logger.info("Committed snapshot %d (%s).", len(self._snapshots), story.title)
        return story

    def current(self) -> Story | None:
        return self._snapshots[-1] if self._snapshots else None

    def can_undo(self) -> bool:
        return len(self._snapshots) > 1

    def undo(self) -> Story | None:
        """Drop the current snapshot if an earlier one exists; return the new current."""
        if self.can_undo():
            self._snapshots.pop()
            logger.info("Undo: %d snapshot(s) remain.", len(self._snapshots))
        return self.current()

    def clear(self) -> None:
        self._snapshots.clear()
