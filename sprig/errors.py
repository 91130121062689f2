"""
Errors

Every expected, user-facing failure derives from SprigError. The CLI
reports these as a one-line message and exits non-zero; anything else
(CorruptRepositoryError included) is an internal failure and propagates.
"""


class SprigError(ValueError):
    """Base class for expected errors raised by repository operations."""


class ValidationError(SprigError):
    """Malformed or missing input (empty message, bad branch name, ...)."""


class NotFoundError(SprigError):
    """A referenced file, commit, branch or stored object does not exist."""


class NothingToRemoveError(NotFoundError):
    """rm on a file that is neither staged nor tracked."""


class NoChangesError(SprigError):
    """Commit or merge attempted with nothing staged."""


class ConflictingStateError(SprigError):
    """The working tree or staging area blocks the operation."""


class NotARepository(SprigError):
    """Raised when a command is run outside a Sprig repository."""
    def __init__(self, start_path):
        super().__init__(
            f"Not in an initialized Sprig directory (searched from {start_path})\n"
            f"  Run 'sprig init' to create one, or use '-C <path>' to specify a directory."
        )


class RepositoryExistsError(SprigError):
    """Raised by init when the directory already holds a repository."""


class CorruptRepositoryError(RuntimeError):
    """Persisted state violates an invariant (e.g. a branch points nowhere)."""
