"""
List purposes and the rules attached to each.
"""

from enum import Enum


class ListPurpose(str, Enum):
    """What a list is for."""

    SHARING = "sharing"
    PICKUP = "pickup"
    BORROWING = "borrowing"
    BUYING = "buying"
    SEARCHING = "searching"
    MINILIBRARY = "minilibrary"

    @property
    def requires_location(self) -> bool:
        """Whether a list with this purpose must carry a location."""
        return self in _LOCATION_REQUIRED

    @property
    def community_editable(self) -> bool:
        """Any authenticated user may edit, not only the owner."""
        return self is ListPurpose.MINILIBRARY

    @property
    def shows_exact_location(self) -> bool:
        """A mini-library is a public place; its exact spot is shown."""
        return self is ListPurpose.MINILIBRARY

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, value) -> "ListPurpose":
        """Accept a ListPurpose or its value; unknown values fall back to sharing."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.SHARING


_LOCATION_REQUIRED = {
    ListPurpose.PICKUP,
    ListPurpose.BORROWING,
    ListPurpose.BUYING,
    ListPurpose.MINILIBRARY,
}

_LABELS = {
    ListPurpose.SHARING: "Share",
    ListPurpose.PICKUP: "Free",
    ListPurpose.BORROWING: "Borrow",
    ListPurpose.BUYING: "Selling",
    ListPurpose.SEARCHING: "Looking",
    ListPurpose.MINILIBRARY: "Little Free Library",
}
