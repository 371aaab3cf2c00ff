"""
errors.py — Failure taxonomy
=============================
Every failure aborts the whole request; the entry point turns any of these
into a single `{"ok": false, "error": ...}` response.
"""


class FluidLabError(Exception):
    """Base class for every error the harness reports."""


class RequestError(FluidLabError, ValueError):
    """Malformed or unparseable request. Reported verbatim."""


class BackendError(FluidLabError, RuntimeError):
    """The compute backend is unavailable or was misused."""


class BackendTimeout(BackendError):
    """A bounded wait on submitted work or a readback expired."""


class ReadbackError(BackendError):
    """Host-visible mapping of a buffer failed."""
