"""
Quiz engine core logic for the chunked quiz.
Handles traversal ordering and mapping question indices onto chunks.
"""
import random
import logging
from typing import List, Optional, Tuple

from .models import Question

logger = logging.getLogger(__name__)


class IndexOutOfRangeError(IndexError):
    """Raised when a question index falls outside the question bank."""

    def __init__(self, question_index: int, total_questions: Optional[int] = None):
        self.question_index = question_index
        self.total_questions = total_questions
        if total_questions is None:
            message = f"Question index {question_index} is negative"
        else:
            message = f"Question index {question_index} outside [0, {total_questions})"
        super().__init__(message)


def locate(question_index: int, chunk_size: int, total_questions: Optional[int] = None) -> Tuple[int, int]:
    """
    Map a logical question index to the chunk holding it.

    Args:
        question_index: Zero-based index into the whole question bank
        chunk_size: Number of questions per chunk
        total_questions: Size of the bank, used for the upper bound check

    Returns:
        Tuple of (chunk_id, offset within chunk)

    Raises:
        IndexOutOfRangeError: If the index is negative or not below total_questions
        ValueError: If chunk_size is less than 1
    """
    if chunk_size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {chunk_size}")
    if question_index < 0:
        raise IndexOutOfRangeError(question_index, total_questions)
    if total_questions is not None and question_index >= total_questions:
        raise IndexOutOfRangeError(question_index, total_questions)

    return divmod(question_index, chunk_size)


class QuizEngine:
    """Builds traversal orders and resolves question positions."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the quiz engine.

        Args:
            rng: Random source for shuffling; a private ``random.Random`` if None
        """
        self._rng = rng or random.Random()

    def create_traversal_order(self, total_questions: int) -> List[int]:
        """
        Create a fresh random permutation of ``[0, total_questions)``.

        Args:
            total_questions: Number of questions in the bank

        Returns:
            Shuffled list of question indices
        """
        if total_questions < 0:
            raise ValueError(f"Total questions cannot be negative, got {total_questions}")

        return self.shuffle_order(list(range(total_questions)))

    def shuffle_order(self, order: List[int]) -> List[int]:
        """
        Fisher-Yates shuffle returning a new list.

        Walks from the last index down to 1 and swaps each slot with a
        uniformly chosen slot in ``[0, i]``.
        """
        shuffled = order.copy()
        for i in range(len(shuffled) - 1, 0, -1):
            j = self._rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    def locate(self, question_index: int, chunk_size: int, total_questions: Optional[int] = None) -> Tuple[int, int]:
        """Instance shortcut for :func:`locate`."""
        return locate(question_index, chunk_size, total_questions)

    def correct_option_text(self, question: Question) -> str:
        """
        Get the option text matching the question's answer label.

        Returns:
            The matching option, or an empty string when no option carries the label
        """
        option = question.option_for(question.answer)
        if option is None:
            logger.warning(f"No option labelled '{question.answer}' for question: {question.text[:60]}")
            return ""
        return option
