"""
Configuration manager for chunked quiz settings.
"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .models import QuizSettings


class ConfigManager:
    """Manages data store and pacing settings for quiz sessions."""

    # Default configuration values
    DEFAULT_DATA_URL = QuizSettings.data_url
    DEFAULT_INDEX_RESOURCE = QuizSettings.index_resource
    DEFAULT_REQUEST_TIMEOUT = None  # httpx default
    DEFAULT_FEEDBACK_DELAY = QuizSettings.feedback_delay

    # Validation limits
    MIN_REQUEST_TIMEOUT = 1
    MAX_REQUEST_TIMEOUT = 120
    MIN_FEEDBACK_DELAY = 0
    MAX_FEEDBACK_DELAY = 10

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = QuizSettings()

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return self._settings

    def set_data_url(self, data_url: str) -> Dict[str, Any]:
        """
        Set the base URL of the data store.

        Args:
            data_url: http(s) URL of the directory holding the index and chunks

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(data_url, str):
            return self._failure(
                f"Data URL must be a string, got {type(data_url).__name__}",
                f"❌ Invalid input: Expected a URL, got {type(data_url).__name__}"
            )

        parsed = urlparse(data_url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return self._failure(
                f"Data URL must be an http(s) URL with a host, got '{data_url}'",
                f"❌ Invalid data URL: {data_url}"
            )

        normalized = data_url.strip()
        if not normalized.endswith("/"):
            normalized += "/"

        self._settings = replace(self._settings, data_url=normalized)
        self.logger.info(f"Data URL set to {normalized}")
        return self._success(f"Data URL set to {normalized}", f"✅ Questions will be loaded from {normalized}")

    def set_index_resource(self, index_resource: str) -> Dict[str, Any]:
        """
        Set the name of the index document.

        Args:
            index_resource: Resource name relative to the data URL

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(index_resource, str) or not index_resource.strip():
            return self._failure(
                "Index resource must be a non-empty string",
                "❌ Index file name cannot be empty"
            )

        self._settings = replace(self._settings, index_resource=index_resource.strip())
        self.logger.info(f"Index resource set to {index_resource.strip()}")
        return self._success(
            f"Index resource set to {index_resource.strip()}",
            f"✅ Index file set to {index_resource.strip()}"
        )

    def set_request_timeout(self, timeout: Optional[float]) -> Dict[str, Any]:
        """
        Set the request timeout for data store fetches.

        Args:
            timeout: Timeout in seconds, or None to use the transport default

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if timeout is None:
            self._settings = replace(self._settings, request_timeout=None)
            self.logger.info("Request timeout set to transport default")
            return self._success("Request timeout set to transport default", "✅ Using the default request timeout")

        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            return self._failure(
                f"Request timeout must be a number, got {type(timeout).__name__}",
                f"❌ Invalid input: Expected a number, got {type(timeout).__name__}"
            )

        if timeout < self.MIN_REQUEST_TIMEOUT or timeout > self.MAX_REQUEST_TIMEOUT:
            return self._failure(
                f"Request timeout must be between {self.MIN_REQUEST_TIMEOUT} and {self.MAX_REQUEST_TIMEOUT} seconds",
                f"❌ Timeout out of range: Use {self.MIN_REQUEST_TIMEOUT}-{self.MAX_REQUEST_TIMEOUT} seconds"
            )

        self._settings = replace(self._settings, request_timeout=float(timeout))
        self.logger.info(f"Request timeout set to {timeout} seconds")
        return self._success(f"Request timeout set to {timeout} seconds", f"✅ Request timeout set to {timeout} seconds")

    def set_feedback_delay(self, delay: float) -> Dict[str, Any]:
        """
        Set how long answer feedback stays up before auto-advancing.

        Args:
            delay: Seconds to wait, 0 disables auto-advance

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(delay, bool) or not isinstance(delay, (int, float)):
            return self._failure(
                f"Feedback delay must be a number, got {type(delay).__name__}",
                f"❌ Invalid input: Expected a number, got {type(delay).__name__}"
            )

        if delay < self.MIN_FEEDBACK_DELAY or delay > self.MAX_FEEDBACK_DELAY:
            return self._failure(
                f"Feedback delay must be between {self.MIN_FEEDBACK_DELAY} and {self.MAX_FEEDBACK_DELAY} seconds",
                f"❌ Delay out of range: Use {self.MIN_FEEDBACK_DELAY}-{self.MAX_FEEDBACK_DELAY} seconds"
            )

        self._settings = replace(self._settings, feedback_delay=float(delay))
        self.logger.info(f"Feedback delay set to {delay} seconds")
        return self._success(f"Feedback delay set to {delay} seconds", f"✅ Feedback shown for {delay} seconds")

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' section of a loaded config.json.

        Invalid values are logged and skipped so defaults stay in effect.

        Returns:
            List of error messages for settings that were rejected
        """
        quiz_config = config.get('quiz', {}) if config else {}
        errors = []

        setters = (
            ('data_url', self.set_data_url),
            ('index_resource', self.set_index_resource),
            ('request_timeout', self.set_request_timeout),
            ('feedback_delay', self.set_feedback_delay),
        )
        for key, setter in setters:
            if key not in quiz_config:
                continue
            result = setter(quiz_config[key])
            if not result['success']:
                errors.append(result['error'])

        if errors:
            self.logger.warning(f"Ignored {len(errors)} invalid configuration values")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = QuizSettings()
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._settings

        parsed = urlparse(settings.data_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid data URL: {settings.data_url}")

        if not settings.index_resource:
            validation_result["valid"] = False
            validation_result["issues"].append("Index resource is empty")

        if settings.request_timeout is not None and not (
            self.MIN_REQUEST_TIMEOUT <= settings.request_timeout <= self.MAX_REQUEST_TIMEOUT
        ):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid request timeout: {settings.request_timeout}")

        if not self.MIN_FEEDBACK_DELAY <= settings.feedback_delay <= self.MAX_FEEDBACK_DELAY:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid feedback delay: {settings.feedback_delay}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._settings
        timeout_str = (
            f"{settings.request_timeout:g} seconds"
            if settings.request_timeout is not None
            else "transport default"
        )
        delay_str = (
            f"{settings.feedback_delay:g} seconds"
            if settings.feedback_delay > 0
            else "manual advance"
        )

        return (
            f"Quiz Settings:\n"
            f"• Data URL: {settings.data_url}\n"
            f"• Index: {settings.index_resource}\n"
            f"• Request timeout: {timeout_str}\n"
            f"• Feedback: {delay_str}"
        )

    def _success(self, message: str, user_message: str) -> Dict[str, Any]:
        return {'success': True, 'message': message, 'user_message': user_message}

    def _failure(self, error: str, user_message: str) -> Dict[str, Any]:
        self.logger.error(error)
        return {'success': False, 'error': error, 'user_message': user_message}
