"""
Core data models for the chunked quiz.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class SessionPhase(Enum):
    """Lifecycle phases of a quiz session."""
    LOADING = "loading"
    ERROR = "error"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class QuizConfig:
    """Index document describing how the question bank is split into chunks."""
    total_questions: int
    chunk_size: int
    num_chunks: int
    files: Tuple[str, ...]


@dataclass
class Question:
    """Represents a single multiple-choice question."""
    text: str
    options: List[str]
    answer: str
    explanation: str = ""

    def option_for(self, letter: str) -> Optional[str]:
        """Return the option whose label character is ``letter``."""
        for option in self.options:
            if option.startswith(letter):
                return option
        return None


@dataclass(frozen=True)
class QuizSettings:
    """Runtime settings for reaching the data store and pacing the quiz."""
    data_url: str = "http://localhost:8000/data/"
    index_resource: str = "questions_index.json"
    request_timeout: Optional[float] = None
    feedback_delay: float = 0.6


@dataclass(frozen=True)
class Feedback:
    """Per-question feedback shown after an answer until the session advances."""
    visible: bool = False
    is_correct: bool = False
    correct_letter: Optional[str] = None
    correct_option: Optional[str] = None


@dataclass
class ChunkCache:
    """The single most recently loaded chunk."""
    chunk_id: int
    questions: List[Question] = field(default_factory=list)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session for the presentation layer."""
    phase: SessionPhase
    position: int
    total_questions: int
    score: int
    wrong: int
    feedback: Feedback
    loading: bool

    @property
    def question_number(self) -> int:
        return self.position + 1
