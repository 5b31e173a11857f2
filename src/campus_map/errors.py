"""Exception hierarchy for the campus map core."""


class CampusMapError(Exception):
    """Base class for all campus map errors."""


class PreconditionFailure(CampusMapError):
    """
    A setup requirement is missing (routing credential, catalogue).

    Surfaced to the user as a blocking setup prompt with an explicit retry
    path. Never retried automatically.
    """


class TransientIOFailure(CampusMapError):
    """
    A single routing request failed or timed out.

    Handled locally by the routing aggregator; callers only ever see a
    ``None`` duration or a ``RouteFailure`` value.
    """

    def __init__(self, profile: str, reason: str) -> None:
        super().__init__(f"{profile} request failed: {reason}")
        self.profile = profile
        self.reason = reason


class InputRejected(CampusMapError, ValueError):
    """Malformed coordinates or identifiers fed to the core."""


class PermissionDenied(CampusMapError):
    """The position source was refused by the user."""


class UnknownCategoryError(CampusMapError, KeyError):
    """A location category has no entry in the visual table (strict mode)."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
