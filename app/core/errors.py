"""
Error taxonomy for the subtitle translation pipeline.

Every failure the pipeline can report is a PipelineError carrying the HTTP
status it maps to and a stable `reason` code that clients can branch on.
"""


class PipelineError(Exception):
    status_code = 500
    reason = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message, "reason": self.reason}


class RequestValidationFailed(PipelineError):
    status_code = 400
    reason = "invalid_request"


class UnsupportedSource(PipelineError):
    status_code = 400
    reason = "unsupported_source"


class VideoTooLong(PipelineError):
    status_code = 400
    reason = "video_too_long"


class NoCaptionsAvailable(PipelineError):
    status_code = 400
    reason = "no_captions"


class VideoUnavailable(PipelineError):
    status_code = 400
    reason = "video_unavailable"


class UserNotFound(PipelineError):
    status_code = 404
    reason = "user_not_found"


class TranslationNotFound(PipelineError):
    status_code = 404
    reason = "translation_not_found"


class VideoNotFound(PipelineError):
    status_code = 404
    reason = "video_not_found"


class InsufficientCredits(PipelineError):
    status_code = 402
    reason = "insufficient_credits"

    def __init__(self, required: int | None, available: int):
        # required is None when the balance is empty and the cost was not estimated yet
        if required is None:
            message = f"No credits left. Available: {available}"
        else:
            message = f"Insufficient credits. Required: {required}, Available: {available}"
        super().__init__(message)
        self.required = required
        self.available = available

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.required is not None:
            payload["required"] = self.required
        payload["available"] = self.available
        return payload


class UpstreamError(PipelineError):
    """Non-retryable failure from the caption platform or the language model."""
    status_code = 500
    reason = "upstream_error"


class UpstreamTransient(UpstreamError):
    """429/503 from the language model, raised once retries are exhausted."""
    reason = "upstream_busy"

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


class TranslationFailed(PipelineError):
    status_code = 500
    reason = "translation_failed"


class TranslationIncomplete(TranslationFailed):
    reason = "translation_incomplete"

    def __init__(self, missing: list[int]):
        preview = ", ".join(str(i) for i in missing[:10])
        if len(missing) > 10:
            preview += ", ..."
        super().__init__(f"Translation is missing {len(missing)} cue(s): {preview}")
        self.missing = missing
