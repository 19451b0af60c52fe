"""
Session-scoped state container: revision history, busy gate, and text-edit batching.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from picturebook.common import PipelineBusyError, ValidationError
from picturebook.pdf_generation import ExportReport, StorybookPDFBuilder
from picturebook.story_generation import GenerationRequest, Story

from .history import RevisionHistory
from .orchestrator import PartialStoryCallback, ProgressCallback, StorySynthesisOrchestrator

logger = logging.getLogger(__name__)


class StorySession:
    """
    Owns one user's story, its undo history, and the pending text edits.

    Full generation, page and cover regeneration, and export all pass through a
    single busy gate, so at most one pipeline is in flight and the history has a
    single writer. Manual text edits accumulate in an uncommitted working copy until
    :meth:`save_text_edits` commits them as one snapshot.
    """

    def __init__(
        self,
        *,
        orchestrator: StorySynthesisOrchestrator | None = None,
        history: RevisionHistory | None = None,
        exporter: StorybookPDFBuilder | None = None,
    ) -> None:
        self._orchestrator = orchestrator or StorySynthesisOrchestrator()
        self._history = history or RevisionHistory()
        self._exporter = exporter
        self._working_copy: Story | None = None
        self._lock = threading.Lock()
        self._active_operation: str | None = None

    @property
    def history(self) -> RevisionHistory:
        return self._history

    @property
    def busy(self) -> bool:
        return self._active_operation is not None

    @property
    def story(self) -> Story | None:
        """The visible story: pending edits if any, otherwise the current snapshot."""
        return self._working_copy or self._history.current()

    @property
    def has_pending_edits(self) -> bool:
        return self._working_copy is not None

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo()

    @contextmanager
    def _busy_gate(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._active_operation is not None:
                raise PipelineBusyError(operation, self._active_operation)
            self._active_operation = operation
        try:
            yield
        finally:
            with self._lock:
                self._active_operation = None

    def _require_story(self) -> Story:
        story = self.story
        if story is None:
            raise ValidationError("No story has been generated yet.", field="story")
        return story

    # ------------------------------------------------------------------ pipelines

    def generate(
        self,
        request: GenerationRequest,
        *,
        progress_callback: ProgressCallback | None = None,
        on_partial_story: PartialStoryCallback | None = None,
    ) -> Story:
        """
        Generate a new story. On success it replaces the session's history.
        """
        with self._busy_gate("generate"):
            story = self._orchestrator.generate_story(
                request,
                progress_callback=progress_callback,
                on_partial_story=on_partial_story,
            )
            self._history.clear()
            self._working_copy = None
            return self._history.commit(story)

    def regenerate_page(
        self,
        page_index: int,
        instruction: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> Story:
        with self._busy_gate("regenerate_page"):
            revised = self._orchestrator.regenerate_page(
                self._require_story(),
                page_index,
                instruction,
                progress_callback=progress_callback,
            )
            self._working_copy = None
            return self._history.commit(revised)

    def regenerate_cover(
        self,
        instruction: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> Story:
        with self._busy_gate("regenerate_cover"):
            revised = self._orchestrator.regenerate_cover(
                self._require_story(),
                instruction,
                progress_callback=progress_callback,
            )
            self._working_copy = None
            return self._history.commit(revised)

    def export_pdf(self, output_path: Path | str) -> ExportReport:
        with self._busy_gate("export"):
            story = self._require_story()
            if self._exporter is None:
                self._exporter = StorybookPDFBuilder()
            return self._exporter.build(story, output_path)

    # ------------------------------------------------------------------ edits & history

    def edit_page_text(self, page_index: int, text: str) -> Story:
        """Update the working copy only; nothing is committed."""
        if self.busy:
            raise PipelineBusyError("edit_page_text", self._active_operation)
        self._working_copy = self._require_story().with_page(page_index, text=text)
        return self._working_copy

    def save_text_edits(self) -> Story | None:
        """Commit pending edits as a single snapshot. Returns the current story."""
        if self.busy:
            raise PipelineBusyError("save_text_edits", self._active_operation)
        pending, self._working_copy = self._working_copy, None
        if pending is not None and pending != self._history.current():
            self._history.commit(pending)
        return self._history.current()

    def discard_text_edits(self) -> Story | None:
        self._working_copy = None
        return self._history.current()

    def undo(self) -> Story | None:
        if self.busy:
            raise PipelineBusyError("undo", self._active_operation)
        if self._working_copy is not None:
            logger.info("Discarding unsaved text edits before undo.")
            self._working_copy = None
        return self._history.undo()

    def restart(self) -> None:
        if self.busy:
            raise PipelineBusyError("restart", self._active_operation)
        self._working_copy = None
        self._history.clear()
