"""Error taxonomy shared by the recommendation core and its collaborators."""


class WatchPartyError(Exception):
    code: str = "watchparty_error"

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message or self.__class__.__name__)
        if code:
            self.code = code


class ValidationError(WatchPartyError, ValueError):
    """Malformed input (wrong seed count, empty genre set, bad vote...). Never retried."""
    code = "validation_error"


class NotFound(WatchPartyError):
    code = "not_found"


class UpstreamUnavailable(WatchPartyError):
    """The Catalog Service could not be reached or kept failing."""
    code = "upstream_unavailable"


class IncompleteProfile(WatchPartyError):
    """Group recommendations requested before every participant finished onboarding."""
    code = "incomplete_profile"

    def __init__(self, participants_ready: int, total_participants: int, message: str = ""):
        super().__init__(
            message
            or f"Not all participants have completed their preferences "
               f"({participants_ready}/{total_participants} ready)"
        )
        self.participants_ready = participants_ready
        self.total_participants = total_participants


class PersistenceError(WatchPartyError):
    code = "persistence_error"


class ConfigurationError(WatchPartyError):
    code = "configuration_error"
