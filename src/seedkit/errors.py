"""Exception hierarchy for seedkit.

Every failure the library reports on purpose derives from ``SeedkitError`` so
the CLI can print one red line and exit non-zero without a traceback.
Driver errors (``psycopg.Error``) are wrapped, never swallowed, and stay
reachable through ``__cause__``.
"""


class SeedkitError(Exception):
    """Base class for all seedkit errors."""

    pass


class ProfileNotFoundError(SeedkitError):
    """Raised when no database URL or profile is configured."""

    pass


class CatalogQueryError(SeedkitError):
    """Raised when a catalog query fails while reading schema metadata.

    Args:
        phase: Dump phase or lookup that failed (e.g. ``"domain types"``).
        cause: Underlying driver error.
    """

    def __init__(self, phase: str, cause: BaseException) -> None:
        self.phase = phase
        self.cause = cause
        super().__init__(f"Catalog query failed while reading {phase}: {cause}")


class SeedCaptureError(SeedkitError):
    """Raised when capturing seed data fails. Nothing is persisted."""

    pass


class SeedReplayError(SeedkitError):
    """Raised when replaying seed data fails. The transaction is rolled back."""

    def __init__(self, message: str, table: str | None = None) -> None:
        self.table = table
        super().__init__(message)


class StaleSeedFormatError(SeedkitError):
    """Raised when a seed directory only holds a legacy artifact layout."""

    pass


class FlattenError(SeedkitError):
    """Raised when flattening migrations fails. Migration files are restored."""

    pass


class MigrationFileError(SeedkitError):
    """Raised for invalid migration names or an unusable migrations directory."""

    pass
