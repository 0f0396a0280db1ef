"""Error types raised by the core components."""


class TagBotError(Exception):
    """Base class for all bot errors."""

    pass


class UnauthorizedError(TagBotError):
    """The sender is not allowed to run a command."""

    pass


class InvalidInputError(TagBotError, ValueError):
    """User input could not be interpreted."""

    pass


class OutOfRangeError(InvalidInputError):
    """A selection number is outside the session's item list."""

    def __init__(self, number: int, count: int):
        super().__init__(f"Selection {number} is outside 1..{count}")
        self.number = number
        self.count = count


class NotFoundError(TagBotError, LookupError):
    """A requested entity does not exist."""

    pass


class EmptyListError(NotFoundError):
    """A session was requested over an empty item list."""

    pass


class NoActiveSessionError(NotFoundError):
    """The identity has no active session."""

    pass


class AlreadyExistsError(TagBotError):
    """The requested change is already in place."""

    pass


class GatewayError(TagBotError):
    """The messaging gateway failed to complete a request."""

    pass
