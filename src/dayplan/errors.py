"""
Error taxonomy for the itinerary optimizer.

InvalidInputError and OptimizationFailure are fatal and reach the caller.
CollaboratorUnavailable is absorbed where it is raised; a flexible item without
candidates is reported through an Unplaced outcome carrying CANDIDATE_NOT_FOUND.
"""

CANDIDATE_NOT_FOUND = "candidate_not_found"
NO_ROOM = "no_room"
NOT_SELECTED = "not_selected"


class DayPlanError(Exception):
    """Base class for optimizer errors."""


class InvalidInputError(DayPlanError):
    """The request cannot be planned (e.g. no fixed items)."""


class CollaboratorUnavailable(DayPlanError):
    """A place search or travel estimation call failed or timed out."""

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"[{collaborator}] {message}")


class OptimizationFailure(DayPlanError):
    """Unexpected internal error; the run is aborted without a partial plan."""

    def __init__(self, message: str, failed_during: str = ""):
        self.failed_during = failed_during
        super().__init__(message)
