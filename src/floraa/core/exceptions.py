"""
Custom exceptions for the Floraa back end.
"""

from typing import Optional


class FloraaError(Exception):
    """Base exception for all Floraa errors."""
    pass


class ConfigurationError(FloraaError):
    """Raised for invalid or unknown configuration."""
    pass


class ContextError(FloraaError):
    """Raised when project memory cannot be stored or updated."""
    pass


class ProjectNotFoundError(ContextError):
    """Raised when a project context does not exist."""

    def __init__(self, project_id: str):
        super().__init__(f"Project context not found: {project_id}")
        self.project_id = project_id


class LLMError(FloraaError):
    """Raised when an LLM call fails."""
    pass


class ModelNotAvailableError(LLMError):
    """Raised when the requested model is not configured."""

    def __init__(self, model_key: str):
        super().__init__(f"Model not available: {model_key}")
        self.model_key = model_key


class AgentError(FloraaError):
    """Raised by agents and the multi-agent system."""
    pass


class UnsupportedTaskError(AgentError):
    """Raised when an agent is asked to run a task type it does not handle."""

    def __init__(self, task_type: str):
        super().__init__(f"Unsupported task type: {task_type}")
        self.task_type = task_type


class UpdateError(FloraaError):
    """Raised by the update manager."""
    pass


class UpdateInProgressError(UpdateError):
    """Raised when an update or rollback is already running."""
    pass


class GitHubAPIError(FloraaError):
    """Raised when the GitHub API returns a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(FloraaError):
    """Raised when a session is missing or invalid."""
    pass
