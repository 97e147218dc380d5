"""Exceptions raised while assembling harness servers."""


class HarnessError(Exception):
    """Base exception for harness errors."""

    pass


class BootstrapError(HarnessError):
    """Raised when a server cannot be assembled or started.

    Covers plugin registration, auth strategy setup, route registration and
    binding the listening socket. The original failure is chained as
    ``__cause__`` where there is one.
    """

    pass
