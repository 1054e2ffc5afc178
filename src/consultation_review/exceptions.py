"""Exceptions for programming errors in callers of the review core.

Expected business conditions (short justifications, failed compliance rules,
missing reference data) are reported in return values and never raised.
"""


class ConsultationReviewError(Exception):
    """Base class for review core errors."""

    code = "REVIEW_ERROR"

    def __init__(self, message, code=None, detail=None):
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail
        super().__init__(message)


class FinalizationStateError(ConsultationReviewError):
    """A finalization transition was requested from the wrong state."""

    code = "INVALID_TRANSITION"


class ConsultationLockedError(FinalizationStateError):
    """The consultation is finalized and can no longer be edited."""

    code = "CONSULTATION_FINALIZED"
