"""Exceptions raised by the news generation pipeline."""


class NewsGenerationError(Exception):
    """Base class for generation pipeline errors."""


class QuotaExceeded(NewsGenerationError):
    """A daily usage ceiling would be exceeded; the current batch must stop."""

    def __init__(self, kind: str, used: int, requested: int, limit: int):
        self.kind = kind
        self.used = used
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"Daily {kind} quota exceeded: {used} used + {requested} requested > {limit}"
        )


class ModelCallError(NewsGenerationError):
    """A single model in the fallback chain failed."""

    def __init__(self, model: str, message: str):
        self.model = model
        super().__init__(f"{model}: {message}")


class MalformedResponse(ModelCallError):
    """Model output was not the expected JSON article shape."""


class GenerationFailed(NewsGenerationError):
    """Every model in the fallback chain failed for one article."""

    def __init__(self, message: str, errors=None):
        self.errors = list(errors or [])
        super().__init__(message)


class NoArticlesGenerated(NewsGenerationError):
    """Bootstrap generation produced no articles at all."""
