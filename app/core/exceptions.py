"""
Seating engine error taxonomy
"""

from typing import Optional


class SeatingError(Exception):
    """Base class for errors surfaced by the seating engine"""

    error_code = "seating_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Optional[dict]:
        return None


class NotFoundError(SeatingError):
    """Event, table or guest group does not exist"""

    error_code = "not_found"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class OverCapacityError(SeatingError):
    """A lock forces more people onto a table than it can seat"""

    error_code = "over_capacity"

    def __init__(self, table_id: Optional[int], table_number: int, required: int, available: int):
        super().__init__(
            f"Table {table_number} cannot seat its locked guests "
            f"({required} required, {available} available)"
        )
        self.table_id = table_id
        self.table_number = table_number
        self.required = required
        self.available = available

    def details(self) -> dict:
        return {
            "table_id": self.table_id,
            "table_number": self.table_number,
            "required": self.required,
            "available": self.available,
        }


class NoSimulationDataError(SeatingError):
    """Promote was requested but the simulation track is empty"""

    error_code = "no_simulation_data"

    def __init__(self):
        super().__init__("There are no simulation assignments to save")


class SeatingModeError(SeatingError):
    """Automatic seating was requested while the event is in manual mode"""

    error_code = "manual_mode"

    def __init__(self, message: str = "Automatic seating is disabled for this event"):
        super().__init__(message)


class InvalidAdjacencyError(SeatingError):
    """Adjacency edge is not valid (e.g. a table next to itself)"""

    error_code = "invalid_adjacency"


class InvalidPreferenceError(SeatingError):
    """Seating preference is not valid (e.g. a guest paired with themselves)"""

    error_code = "invalid_preference"
