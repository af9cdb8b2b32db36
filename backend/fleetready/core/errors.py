from typing import Optional, Sequence


class FleetReadyError(Exception):
    """Base class for pipeline errors."""


class FormatError(FleetReadyError):
    """Raw input could not be parsed in its declared format."""

    def __init__(self, message: str, *, format_tag: Optional[str] = None):
        super().__init__(message)
        self.format_tag = format_tag


class SchemaMismatchError(FleetReadyError):
    """A parsed record is missing required canonical fields."""

    def __init__(self, missing: Sequence[str], *, format_tag: Optional[str] = None):
        self.missing = tuple(missing)
        self.format_tag = format_tag
        super().__init__(f"missing required field(s): {', '.join(self.missing)}")


class MergeConflictError(FleetReadyError):
    """
    Records grouped as one event carry contradictory non-overridable identifiers.
    The offending record keys are routed to quarantine for manual review.
    """

    def __init__(self, field: str, values: Sequence[str], record_keys: Sequence[str]):
        self.field = field
        self.values = tuple(values)
        self.record_keys = tuple(record_keys)
        super().__init__(f"contradictory {field}: {', '.join(self.values)}")


class PersistenceError(FleetReadyError):
    """The canonical store is unavailable; the current batch was rolled back."""


class DependencyCycleError(FleetReadyError):
    def __init__(self, part_number: str, depends_on: str, path: Sequence[str]):
        self.part_number = part_number
        self.depends_on = depends_on
        self.path = tuple(path)
        super().__init__(
            f"{part_number} -> {depends_on} would close a cycle: {' -> '.join(self.path)}"
        )
