"""
Lists Module

List purposes, location privacy and the list service.
"""

from bookdrop.lists.purposes import ListPurpose
from bookdrop.lists.location import (
    GeocodeResult,
    GeocodingClient,
    LocationRecord,
    fuzz_location,
)
from bookdrop.lists.service import ListService, ReconcileReport

__all__ = [
    "ListPurpose",
    "GeocodeResult",
    "GeocodingClient",
    "LocationRecord",
    "fuzz_location",
    "ListService",
    "ReconcileReport",
]
