"""
Error taxonomy.

Every failure a request handler can report is an ``EVoteError`` subclass
carrying the HTTP status it maps to.  The app factory registers a single
exception handler that turns these into ``{"detail": ..., "reason": ...}``
JSON bodies; nothing below the route layer builds HTTP responses.

Vote-casting rejections additionally carry a machine-readable ``reason``
(``ElectionUnavailable``, ``VotingWindowClosed``, ``AlreadyVoted``,
``InvalidCandidate``) so clients can branch without parsing messages.
"""


class EVoteError(Exception):
    status_code = 500
    default_detail = "Server error"
    reason: str | None = None

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        body = {"detail": self.detail}
        if self.reason:
            body["reason"] = self.reason
        return body


class ValidationError(EVoteError):
    status_code = 400
    default_detail = "Invalid request"


class NotFoundError(EVoteError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(EVoteError):
    status_code = 400
    default_detail = "Conflict"


class AuthError(EVoteError):
    status_code = 401
    default_detail = "Not authenticated"


class ForbiddenError(AuthError):
    status_code = 403
    default_detail = "Access denied"


class ServerError(EVoteError):
    status_code = 500
    default_detail = "Server error"


# ── Vote casting ─────────────────────────────────────────────────────────────

class VoteRejected(EVoteError):
    status_code = 400


class ElectionUnavailableError(VoteRejected):
    reason = "ElectionUnavailable"
    default_detail = "Election not found or inactive"


class VotingWindowClosedError(VoteRejected):
    reason = "VotingWindowClosed"
    default_detail = "Voting period has ended or not started yet"


class AlreadyVotedError(VoteRejected, ConflictError):
    reason = "AlreadyVoted"
    default_detail = "You have already voted in this election"


class InvalidCandidateError(VoteRejected):
    reason = "InvalidCandidate"
    default_detail = "Invalid candidate"


# ── Storage-level signals (translated by callers) ────────────────────────────

class DuplicateBallotError(Exception):
    """The (election, voter) uniqueness constraint rejected an insert."""


class DuplicateEmailError(Exception):
    """The users.email uniqueness constraint rejected an insert."""
