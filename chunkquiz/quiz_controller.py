"""
Quiz session controller for the chunked quiz.
Owns the traversal order, position, loaded chunk, scoring and feedback state.
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .data_manager import ChunkLoadError, ConfigLoadError, DataFormatError, DataManager
from .models import ChunkCache, Feedback, Question, QuizConfig, SessionPhase, SessionSnapshot
from .quiz_engine import IndexOutOfRangeError, QuizEngine


@dataclass
class _PendingFetch:
    chunk_id: int
    task: "asyncio.Future[List[Question]]"


class QuizController:
    """
    Drives a single quiz attempt over a chunked question bank.

    The controller builds a random traversal order on start, loads only the
    chunk holding the question at the current position, and keeps score and
    feedback state. Presentation code reads ``snapshot()`` and calls the
    intent methods; none of them raise on load failures. A failed load shows
    up as ``None`` from ``current_question()``, a failed index as the
    ``ERROR`` phase.
    """

    def __init__(
        self,
        data_manager: DataManager,
        quiz_engine: Optional[QuizEngine] = None,
        config: Optional[QuizConfig] = None,
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Loader for the index and chunk documents
            quiz_engine: Engine used for shuffling and locating questions
            config: Already loaded quiz configuration, fetched by initialize() if None
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.quiz_engine = quiz_engine or QuizEngine()

        self.config: Optional[QuizConfig] = config
        self.config_error: Optional[ConfigLoadError] = None
        self.phase = SessionPhase.NOT_STARTED if config is not None else SessionPhase.LOADING

        self.score = 0
        self.wrong = 0
        self.feedback = Feedback()
        self.last_chunk_error: Optional[ChunkLoadError] = None

        self._order: List[int] = []
        self._position = 0
        self._cache: Optional[ChunkCache] = None
        self._pending: Optional[_PendingFetch] = None
        self._failed_chunk_id: Optional[int] = None
        self._config_task: Optional["asyncio.Future[QuizConfig]"] = None

    @property
    def position(self) -> int:
        """Current index into the traversal order."""
        return self._position

    @property
    def traversal_order(self) -> Tuple[int, ...]:
        return tuple(self._order)

    @property
    def total_questions(self) -> int:
        return self.config.total_questions if self.config is not None else 0

    @property
    def cached_chunk_id(self) -> Optional[int]:
        return self._cache.chunk_id if self._cache is not None else None

    @property
    def is_loading(self) -> bool:
        return self._pending is not None and not self._pending.task.done()

    async def initialize(self) -> bool:
        """
        Fetch the quiz configuration once.

        Concurrent callers share the same index request.

        Returns:
            True if the configuration is available, False if loading failed
        """
        if self.config is not None:
            return True
        if self.phase is SessionPhase.ERROR:
            return False

        if self._config_task is None:
            self._config_task = asyncio.ensure_future(self.data_manager.load_config())

        try:
            config = await asyncio.shield(self._config_task)
        except ConfigLoadError as e:
            if self.phase is not SessionPhase.ERROR:
                self.config_error = e
                self.phase = SessionPhase.ERROR
                self.logger.error(f"Quiz unavailable, configuration could not be loaded: {e}")
            return False

        if self.config is None:
            self.config = config
            self.phase = SessionPhase.NOT_STARTED
        return True

    def start(self) -> bool:
        """
        Begin a new attempt with a fresh random traversal order.

        Returns:
            True if the attempt started, False if the configuration is missing
        """
        if self.config is None:
            self.logger.warning("Cannot start quiz before configuration is loaded")
            return False

        self._order = self.quiz_engine.create_traversal_order(self.config.total_questions)
        self._position = 0
        self.score = 0
        self.wrong = 0
        self.feedback = Feedback()
        self._clear_cache()

        if not self._order:
            self.phase = SessionPhase.COMPLETED
            self.logger.info("Quiz has no questions, marking attempt completed")
            return True

        self.phase = SessionPhase.IN_PROGRESS
        self.logger.info(f"Quiz started with {len(self._order)} questions")
        return True

    def restart(self) -> bool:
        """
        Discard the current attempt and start a new one.

        Returns:
            True if a new attempt started
        """
        if self.phase not in (SessionPhase.IN_PROGRESS, SessionPhase.COMPLETED):
            self.logger.debug(f"Ignoring restart in phase {self.phase.value}")
            return False

        self.phase = SessionPhase.NOT_STARTED
        self._order = []
        self._clear_cache()
        return self.start()

    async def current_question(self) -> Optional[Question]:
        """
        Resolve the question at the current position.

        Loads the owning chunk if it is not the cached one. A fetch whose
        chunk no longer matches the current position when it resolves is
        discarded and the lookup is repeated for the new position.

        Returns:
            The current Question, or None if it is unavailable
        """
        while self.phase is SessionPhase.IN_PROGRESS:
            chunk_id, offset = self._required_location()

            if self._cache is None or self._cache.chunk_id != chunk_id:
                if self._failed_chunk_id == chunk_id:
                    return None

                questions = await self._fetch_chunk(chunk_id)
                if questions is None or self._required_chunk_id() != chunk_id:
                    self.logger.debug(f"Discarding stale result for chunk {chunk_id}")
                    continue

                if not questions:
                    self._record_chunk_failure(chunk_id)
                    return None

                self._cache = ChunkCache(chunk_id=chunk_id, questions=questions)
                self.last_chunk_error = None

            if offset >= len(self._cache.questions):
                self.logger.warning(
                    f"Chunk {chunk_id} has {len(self._cache.questions)} questions, "
                    f"offset {offset} requested; index and data disagree"
                )
                return None

            return self._cache.questions[offset]

        return None

    async def submit_answer(self, selected_letter: str) -> Optional[Feedback]:
        """
        Score an answer for the current question.

        Ignored while feedback is visible or the question is unavailable.

        Returns:
            The feedback now shown, or None if the answer was ignored
        """
        if self.phase is not SessionPhase.IN_PROGRESS or self.feedback.visible:
            return None

        question = await self.current_question()
        if question is None or self.feedback.visible:
            return None

        is_correct = selected_letter == question.answer
        if is_correct:
            self.score += 1
        else:
            self.wrong += 1

        self.feedback = Feedback(
            visible=True,
            is_correct=is_correct,
            correct_letter=question.answer,
            correct_option=self.quiz_engine.correct_option_text(question),
        )
        self.logger.debug(
            f"Answer '{selected_letter}' for question {self._position + 1}: "
            f"{'correct' if is_correct else 'wrong'}"
        )
        return self.feedback

    def advance(self) -> bool:
        """Hide feedback and move to the next question, completing after the last."""
        if self.phase is not SessionPhase.IN_PROGRESS:
            return False

        self.feedback = Feedback()
        self._failed_chunk_id = None

        if self._position >= len(self._order) - 1:
            self._complete()
            return True

        self._position += 1
        return True

    def skip(self) -> bool:
        """Count the current question as wrong and advance."""
        if self.phase is not SessionPhase.IN_PROGRESS or self.feedback.visible:
            return False

        self.wrong += 1
        return self.advance()

    def finish(self) -> bool:
        """End the attempt early without changing the counters."""
        if self.phase is not SessionPhase.IN_PROGRESS or self.feedback.visible:
            return False

        self._complete()
        return True

    def go_to(self, position: int) -> bool:
        """
        Jump to any position in the traversal order.

        Counters are untouched; a revisited question may be answered and
        scored again.

        Returns:
            True if the position changed, False for an out-of-range position
        """
        if self.phase is not SessionPhase.IN_PROGRESS:
            return False

        try:
            self._check_position(position)
        except IndexOutOfRangeError as e:
            self.logger.debug(f"Ignoring navigation: {e}")
            return False

        self._move_to(position)
        return True

    def previous(self) -> bool:
        """Step back one position."""
        if self.phase is not SessionPhase.IN_PROGRESS or self._position == 0:
            return False

        self._move_to(self._position - 1)
        return True

    def snapshot(self) -> SessionSnapshot:
        """Get a read-only view of the session for rendering."""
        return SessionSnapshot(
            phase=self.phase,
            position=self._position,
            total_questions=self.total_questions,
            score=self.score,
            wrong=self.wrong,
            feedback=self.feedback,
            loading=self.is_loading,
        )

    def get_results(self) -> Dict[str, Any]:
        """
        Get score information for the completion screen.

        Returns:
            Dictionary with score, wrong, answered, total_questions and percentage
        """
        total = self.total_questions
        # Halves round up, so 1 of 8 reports 13
        percentage = math.floor(self.score / total * 100 + 0.5) if total else 0
        return {
            'score': self.score,
            'wrong': self.wrong,
            'answered': self.score + self.wrong,
            'total_questions': total,
            'percentage': percentage,
        }

    def close(self) -> None:
        """Cancel any outstanding index or chunk fetch."""
        if self._config_task is not None and not self._config_task.done():
            self._config_task.cancel()
        self._cancel_pending()

    def _required_location(self) -> Tuple[int, int]:
        question_index = self._order[self._position]
        return self.quiz_engine.locate(question_index, self.config.chunk_size, self.config.total_questions)

    def _required_chunk_id(self) -> Optional[int]:
        if self.phase is not SessionPhase.IN_PROGRESS:
            return None
        return self._required_location()[0]

    def _check_position(self, position: int) -> None:
        if not 0 <= position < len(self._order):
            raise IndexOutOfRangeError(position, len(self._order))

    def _move_to(self, position: int) -> None:
        self._position = position
        self.feedback = Feedback()
        self._failed_chunk_id = None

    def _complete(self) -> None:
        self.phase = SessionPhase.COMPLETED
        self._cancel_pending()
        self.logger.info(f"Quiz completed: {self.score} correct, {self.wrong} wrong")

    async def _fetch_chunk(self, chunk_id: int) -> Optional[List[Question]]:
        """
        Load a chunk, joining an in-flight fetch for the same chunk.

        Returns:
            The loaded questions (empty on failure), or None if the fetch was
            superseded by one for another chunk
        """
        pending = self._pending
        if pending is not None and pending.chunk_id == chunk_id and not pending.task.done():
            task = pending.task
        else:
            self._cancel_pending()
            resource = self.config.files[chunk_id]
            self.logger.debug(f"Fetching chunk {chunk_id} from {resource}")
            task = asyncio.ensure_future(self.data_manager.load_chunk(resource))
            self._pending = _PendingFetch(chunk_id=chunk_id, task=task)

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise
        finally:
            if self._pending is not None and self._pending.task is task and task.done():
                self._pending = None

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.task.done():
            self.logger.debug(f"Cancelling superseded fetch for chunk {self._pending.chunk_id}")
            self._pending.task.cancel()
        self._pending = None

    def _record_chunk_failure(self, chunk_id: int) -> None:
        resource = self.config.files[chunk_id]
        cause = self.data_manager.last_error or DataFormatError(resource, ["chunk document is empty"])
        self.last_chunk_error = ChunkLoadError(chunk_id, resource, cause)
        self._failed_chunk_id = chunk_id
        self.logger.warning(f"Question {self._position + 1} unavailable: {self.last_chunk_error}")

    def _clear_cache(self) -> None:
        self._cancel_pending()
        self._cache = None
        self._failed_chunk_id = None
        self.last_chunk_error = None
