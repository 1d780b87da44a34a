"""Custom exceptions for eipbot."""

from typing import Optional


class EipBotError(Exception):
    """Base exception for all eipbot errors."""

    pass


class GitHubAPIError(EipBotError):
    """Exception raised when a call to the hosting platform fails."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, response_data: Optional[dict] = None
    ):
        """
        Initialize API error.

        Args:
            message: Error message
            status_code: Optional HTTP status code
            response_data: Optional response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class NotFoundError(GitHubAPIError):
    """Exception raised for HTTP 404 responses."""

    def __init__(self, message: str, response_data: Optional[dict] = None):
        super().__init__(message, status_code=404, response_data=response_data)


class FrontMatterError(EipBotError):
    """Exception raised when a document has no usable front-matter block."""

    pass


class PullRequestLockedError(EipBotError):
    """Exception raised when another invocation already holds a pull request."""

    pass
