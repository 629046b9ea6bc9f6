"""Error taxonomy for the job pipeline.

Precondition failures are raised synchronously at the API boundary. Everything
that happens after a job is accepted is reported through the job row instead.
"""


class PipelineError(Exception):
    """Base class for errors raised by the pipeline."""


class PreconditionError(PipelineError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ProviderError(PipelineError):
    """An external generation provider rejected or failed a request."""

    def __init__(self, message: str, provider: str = "", retryable: bool = True):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.retryable = retryable


class CompilationError(PipelineError):
    """Staging or concatenating clips for a final film failed."""


class ConfigurationError(PipelineError):
    pass


class PromptLayerConflictError(PipelineError):
    """A prompt layer version could not be assigned after repeated collisions."""
