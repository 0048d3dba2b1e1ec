class ClassificationError(Exception):
    """Raised when classification of an image fails."""


class ClassificationValidationError(ClassificationError):
    """Raised when the classifier response does not match the verdict contract."""


class ClassificationNetworkError(ClassificationError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""


class ClassificationContentFilteredError(ClassificationError):
    """Raised when the AI provider refuses or filters the response for safety reasons."""


class ClassificationInvalidJsonError(ClassificationError):
    """Raised when the provider response is not a JSON object."""
