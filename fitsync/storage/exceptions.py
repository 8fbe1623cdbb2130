"""Error taxonomy for the record store."""

from __future__ import annotations


class RecordValidationError(ValueError):
    """A record, date or range is missing a required field or cannot be coerced."""


class StorageFault(RuntimeError):
    """The storage engine failed or is not available."""


class WriteError(StorageFault):
    """A write statement reported that no row was affected."""
