"""Safewatch Backend — Error taxonomy"""


class SafewatchError(Exception):
    """Base class for all domain errors."""


class InvalidInput(SafewatchError):
    """Malformed, oversized or missing fields. Raised before any write."""


class InvalidCoordinate(InvalidInput):
    pass


class InvalidPrecision(InvalidInput):
    pass


class NotFound(SafewatchError):
    """Unknown id, or a report that is past its expiry."""


class StoreUnavailable(SafewatchError):
    """Transient document store failure (lock timeout, I/O error)."""


class ClassificationUnavailable(SafewatchError):
    """AI classifier missing or returned something unusable. Never leaves classifier.py."""
