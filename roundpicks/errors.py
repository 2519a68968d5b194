"""
Error taxonomy for pick submission, round lifecycle and scoring.

Every error carries a machine-readable ``code`` and a generic public ``message``.
The optional ``detail`` is for server-side logs only and is never sent to clients.
"""


class PickemError(Exception):
    code = "error"
    status_code = 400
    message = "Request could not be processed"
    server_fault = False

    def __init__(self, detail=None):
        self.detail = detail or self.message
        super().__init__(self.detail)

    def to_dict(self):
        return {"error": self.message, "code": self.code}


# Token errors share one status and body shape; only ``code`` differs.
class InvalidToken(PickemError):
    code = "invalid"
    status_code = 403
    message = "This link is no longer valid. Please request a new link."

    def to_dict(self):
        data = super().to_dict()
        data["locked"] = False
        return data


class TokenNotFound(InvalidToken):
    code = "invalid"


class TokenExpired(InvalidToken):
    code = "expired"


class TokenAlreadyConsumed(InvalidToken):
    code = "invalid"


class RoundLocked(PickemError):
    code = "locked"
    status_code = 403
    message = "This round is now locked"

    def to_dict(self):
        data = super().to_dict()
        data["locked"] = True
        return data


class SubmissionError(PickemError):
    code = "invalid_submission"
    status_code = 400
    message = "Your pick could not be saved. Please check it and try again."


class InvalidSubmission(SubmissionError):
    code = "invalid_submission"


class InvalidCandidate(SubmissionError):
    code = "invalid_candidate"
    message = "Please select one of the available options."


class EmptySubmission(SubmissionError):
    code = "empty_submission"
    message = "Please enter a pick before submitting."


class InvalidTransition(PickemError):
    code = "invalid_transition"
    status_code = 409
    message = "That action is not allowed for the round in its current state"
    server_fault = True


class InvalidOutcome(PickemError):
    code = "invalid_outcome"
    status_code = 400
    message = "The round outcome is not valid"


class SeasonEnded(PickemError):
    code = "season_ended"
    status_code = 409
    message = "The season has ended and can no longer be changed"


class RecomputeFailure(PickemError):
    code = "recompute_failed"
    status_code = 500
    message = "Scores could not be recalculated"
    server_fault = True


class ValidationError(PickemError):
    """Malformed administrative input (round definition, point values)"""

    code = "validation_error"
    status_code = 400
    message = "The request contains invalid values"

    def to_dict(self):
        data = super().to_dict()
        # Admin-facing: the detail names the offending field
        data["detail"] = self.detail
        return data
