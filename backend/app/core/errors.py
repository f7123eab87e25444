class RelayError(Exception):
    """Base for failures that are rendered to the caller as ``{"error": message}``."""

    status_code = 500
    default_message = "Unexpected server error. Try again later."

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(RelayError):
    default_message = "Server mis-configuration. Contact support."


class ValidationError(RelayError):
    status_code = 400
    default_message = "No image supplied"


class UpstreamRejected(RelayError):
    default_message = "Prediction service error"


class GenerationFailed(RelayError):
    default_message = "Image generation failed"


class GenerationTimeout(RelayError):
    status_code = 504
    default_message = "Image generation timed out"


class RequestCancelled(RelayError):
    # nginx convention for "client closed request"
    status_code = 499
    default_message = "Request cancelled by client"


class UnexpectedError(RelayError):
    pass
