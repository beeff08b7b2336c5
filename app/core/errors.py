from __future__ import annotations


class MigrationError(Exception):
    """Base class for failures inside the migration pipeline."""


class ValidationError(MigrationError):
    """The job payload is malformed or lacks the identifiers a migration needs."""


class ProcessSpawnError(MigrationError):
    pass


class ProcessExitError(MigrationError):
    def __init__(self, code: int) -> None:
        self.code = code
        super().__init__(f"process exited with code {code}")


class UploadError(MigrationError):
    pass


class PersistenceError(MigrationError):
    """A ledger or scratch-file write failed."""


class PlatformError(Exception):
    pass
