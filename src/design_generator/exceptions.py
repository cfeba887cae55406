"""Error taxonomy shared by the generator, the store and the request router."""


class DesignServiceError(Exception):
    """Base class for errors raised inside the design service."""

    # Stable code sent to clients alongside the user-facing message.
    error_code: str = "INTERNAL_ERROR"


class ModelCallError(DesignServiceError):
    """The external model could not be reached or returned no usable content."""

    error_code = "MODEL_CALL_FAILED"


class GenerationFailure(DesignServiceError):
    """
    A design could not be produced: the model call errored, timed out, or
    returned output that is not a valid design specification.

    Callers treat every variant the same way and ask the user to retry.
    """

    error_code = "GENERATION_FAILED"


class DesignNotFound(DesignServiceError):
    """A referenced design id is not present in history."""

    error_code = "NOT_FOUND"

    def __init__(self, design_id: str):
        super().__init__(f"Design '{design_id}' not found")
        self.design_id = design_id


class ValidationFailure(DesignServiceError):
    """An inbound request is malformed or misses a required field."""

    error_code = "VALIDATION_FAILED"
