"""
Data manager for fetching and validating the chunked question bank.

The bank is served as static JSON over HTTP: one index document describing
the chunk layout, plus one document per chunk holding its questions.
"""
import math
import logging
from typing import Any, Dict, List, Optional

import httpx

from .models import Question, QuizConfig


class QuizDataError(Exception):
    """Base exception for question bank loading errors."""
    pass


class DataFetchError(QuizDataError):
    """Raised when the transport fails or reports a non-success status."""

    def __init__(self, resource: str, message: str, status_code: Optional[int] = None):
        self.resource = resource
        self.status_code = status_code
        super().__init__(f"{resource}: {message}")


class DataFormatError(QuizDataError):
    """Raised when a document cannot be parsed into the expected shape."""

    def __init__(self, resource: str, issues: List[str]):
        self.resource = resource
        self.issues = list(issues)
        super().__init__(f"{resource}: {'; '.join(self.issues)}")


class ConfigLoadError(QuizDataError):
    """Raised when the index document cannot be loaded. Fatal to a session."""
    pass


class ChunkLoadError(QuizDataError):
    """Records a failed chunk load. Recoverable on the next navigation."""

    def __init__(self, chunk_id: int, resource: str, cause: Exception):
        self.chunk_id = chunk_id
        self.resource = resource
        self.cause = cause
        super().__init__(f"Chunk {chunk_id} ({resource}) failed to load: {cause}")


class DataManager:
    """Fetches the index and chunk documents from the data store."""

    DEFAULT_INDEX_RESOURCE = "questions_index.json"

    # Chunk files may be rewritten between sessions, so never accept a cached copy
    NO_CACHE_HEADERS = {
        "Cache-Control": "no-store, no-cache, max-age=0",
        "Pragma": "no-cache",
    }

    def __init__(
        self,
        base_url: str,
        index_resource: str = DEFAULT_INDEX_RESOURCE,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize DataManager for a data store.

        Args:
            base_url: URL of the directory holding the index and chunk documents
            index_resource: Name of the index document relative to base_url
            timeout: Request timeout in seconds, httpx default if None
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url
        self.index_resource = index_resource
        self.logger = logging.getLogger(__name__)
        self.last_error: Optional[QuizDataError] = None

        client_kwargs: Dict[str, Any] = {
            "base_url": base_url,
            "headers": self.NO_CACHE_HEADERS,
            "follow_redirects": True,
        }
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.AsyncClient(**client_kwargs)

    async def fetch_json(self, resource: str) -> Any:
        """
        Fetch a single document and decode its JSON body.

        Raises:
            DataFetchError: On transport failure or non-success status
            DataFormatError: If the body is not valid JSON
        """
        try:
            response = await self.client.get(resource)
        except httpx.HTTPError as e:
            raise DataFetchError(resource, f"request failed: {e}") from e

        if not response.is_success:
            raise DataFetchError(
                resource,
                f"HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise DataFormatError(resource, [f"invalid JSON: {e}"]) from e

    def validate_index_structure(self, data: Any) -> List[str]:
        """
        Validate the index document.

        Expected structure:
        {
            "total_questions": int,
            "chunk_size": int,
            "num_chunks": int,
            "files": [str, ...]
        }

        Returns:
            List of issues found, empty when the document is valid
        """
        if not isinstance(data, dict):
            return ["index document must be a JSON object"]

        issues = []
        for key in ("total_questions", "chunk_size", "num_chunks"):
            if key not in data:
                issues.append(f"missing '{key}' field")
            elif not isinstance(data[key], int) or isinstance(data[key], bool):
                issues.append(f"'{key}' must be an integer")

        files = data.get("files")
        if files is None:
            issues.append("missing 'files' field")
        elif not isinstance(files, list) or not all(isinstance(name, str) for name in files):
            issues.append("'files' must be an array of strings")

        if issues:
            return issues

        total = data["total_questions"]
        chunk_size = data["chunk_size"]
        num_chunks = data["num_chunks"]

        if total < 0:
            issues.append(f"'total_questions' cannot be negative, got {total}")
        if chunk_size < 1:
            issues.append(f"'chunk_size' must be at least 1, got {chunk_size}")
        if len(files) != num_chunks:
            issues.append(f"'files' lists {len(files)} chunks but 'num_chunks' is {num_chunks}")
        if total > 0 and chunk_size >= 1 and num_chunks != math.ceil(total / chunk_size):
            issues.append(
                f"'num_chunks' is {num_chunks}, expected {math.ceil(total / chunk_size)} "
                f"for {total} questions in chunks of {chunk_size}"
            )

        return issues

    def validate_chunk_structure(self, data: Any) -> List[str]:
        """
        Validate a chunk document.

        Expected structure:
        [
            {
                "question": str,
                "options": [str, ...],
                "answer": str,      # single label character
                "explanation": str  # optional
            }
        ]

        Returns:
            List of issues found, empty when the document is valid
        """
        if not isinstance(data, list):
            return ["chunk document must be a JSON array"]

        issues = []
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                issues.append(f"question {i} must be an object")
                continue

            if not isinstance(item.get("question"), str):
                issues.append(f"question {i} 'question' field must be a string")

            options = item.get("options")
            if not isinstance(options, list) or not all(isinstance(opt, str) for opt in options):
                issues.append(f"question {i} 'options' field must be an array of strings")

            answer = item.get("answer")
            if not isinstance(answer, str) or len(answer) != 1:
                issues.append(f"question {i} 'answer' field must be a single character")

            if "explanation" in item and not isinstance(item["explanation"], str):
                issues.append(f"question {i} 'explanation' field must be a string")

        return issues

    def parse_config(self, data: Any, resource: str = "index") -> QuizConfig:
        """
        Parse a validated index document into a QuizConfig.

        Raises:
            DataFormatError: If the document does not have the index shape
        """
        issues = self.validate_index_structure(data)
        if issues:
            raise DataFormatError(resource, issues)

        return QuizConfig(
            total_questions=data["total_questions"],
            chunk_size=data["chunk_size"],
            num_chunks=data["num_chunks"],
            files=tuple(data["files"]),
        )

    def parse_questions(self, data: Any, resource: str = "chunk") -> List[Question]:
        """
        Parse a chunk document into Question objects.

        Raises:
            DataFormatError: If the document does not have the chunk shape
        """
        issues = self.validate_chunk_structure(data)
        if issues:
            raise DataFormatError(resource, issues)

        questions = []
        for item in data:
            question = Question(
                text=item["question"],
                options=list(item["options"]),
                answer=item["answer"],
                explanation=item.get("explanation", ""),
            )
            matching = [opt for opt in question.options if opt.startswith(question.answer)]
            if not matching:
                self.logger.warning(
                    f"{resource}: answer '{question.answer}' matches no option of '{question.text[:60]}'"
                )
            elif len(matching) > 1:
                self.logger.warning(
                    f"{resource}: answer '{question.answer}' matches {len(matching)} options of "
                    f"'{question.text[:60]}', using '{matching[0]}'"
                )
            questions.append(question)

        return questions

    async def load_config(self) -> QuizConfig:
        """
        Fetch and parse the index document.

        Raises:
            ConfigLoadError: If the index cannot be fetched or parsed
        """
        try:
            data = await self.fetch_json(self.index_resource)
            config = self.parse_config(data, self.index_resource)
        except QuizDataError as e:
            self.last_error = e
            self.logger.error(f"Failed to load quiz configuration: {e}")
            raise ConfigLoadError(f"Failed to load quiz configuration: {e}") from e

        self.logger.info(
            f"Loaded quiz configuration: {config.total_questions} questions "
            f"in {config.num_chunks} chunks of {config.chunk_size}"
        )
        return config

    async def fetch_chunk(self, resource: str) -> List[Question]:
        """
        Fetch and parse one chunk document.

        Raises:
            DataFetchError: On transport failure or non-success status
            DataFormatError: If the body is not a valid chunk document
        """
        data = await self.fetch_json(resource)
        return self.parse_questions(data, resource)

    async def load_chunk(self, resource: str) -> List[Question]:
        """
        Load one chunk, converting failures into an empty result.

        A single attempt is made. The failure is logged and kept in
        ``last_error``; callers treat an empty list as "not loaded yet".

        Returns:
            List of Question objects, empty if the load failed
        """
        try:
            questions = await self.fetch_chunk(resource)
        except QuizDataError as e:
            self.last_error = e
            self.logger.error(f"Failed to load chunk {resource}: {e}")
            return []

        self.last_error = None
        self.logger.debug(f"Loaded chunk {resource} with {len(questions)} questions")
        return questions

    async def close(self) -> None:
        """Closes the async client session."""
        await self.client.aclose()

    async def __aenter__(self) -> "DataManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
