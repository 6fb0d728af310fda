class TandemLogError(Exception):
    """Base class for errors raised inside the logging subsystem.

    These never reach application code; the store lifecycle catches them
    and turns them into console notices.
    """


class StoreSetupError(TandemLogError):
    """The store could not be prepared (database, engine or table)."""


class InvalidIdentifierError(StoreSetupError):
    """A database name that cannot be used as a SQL identifier."""

    def __init__(self, name):
        super().__init__(f'invalid database identifier: {name!r}')
        self.name = name
