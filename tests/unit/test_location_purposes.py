"""
Unit tests for list purposes and location handling.
"""

import math

import httpx
import pytest

from bookdrop.exceptions import ConfigurationError, NotFoundError, ValidationError
from bookdrop.lists.location import (
    FUZZ_RADIUS_DEGREES,
    GeocodingClient,
    LocationRecord,
    fuzz_location,
    parse_geocode_result,
)
from bookdrop.lists.purposes import ListPurpose

pytestmark = pytest.mark.asyncio


GEOCODE_RESULT = {
    "formatted_address": "Berkeley Public Library, 2090 Kittredge St, Berkeley, CA 94704, USA",
    "address_components": [
        {"long_name": "Berkeley Public Library", "types": ["establishment", "point_of_interest"]},
        {"long_name": "Berkeley", "types": ["locality", "political"]},
        {"long_name": "California", "types": ["administrative_area_level_1", "political"]},
        {"long_name": "United States", "types": ["country", "political"]},
    ],
    "geometry": {"location": {"lat": 37.868, "lng": -122.268}},
}


class TestListPurpose:
    """Rules attached to each purpose."""

    async def test_location_requirements(self):
        required = {p for p in ListPurpose if p.requires_location}
        assert required == {
            ListPurpose.PICKUP,
            ListPurpose.BORROWING,
            ListPurpose.BUYING,
            ListPurpose.MINILIBRARY,
        }

    async def test_only_minilibrary_is_community_editable(self):
        assert [p for p in ListPurpose if p.community_editable] == [ListPurpose.MINILIBRARY]
        assert ListPurpose.MINILIBRARY.shows_exact_location
        assert not ListPurpose.PICKUP.shows_exact_location

    async def test_parse(self):
        assert ListPurpose.parse("PICKUP") is ListPurpose.PICKUP
        assert ListPurpose.parse(ListPurpose.BUYING) is ListPurpose.BUYING
        assert ListPurpose.parse("garage-sale") is ListPurpose.SHARING

    async def test_labels(self):
        assert ListPurpose.MINILIBRARY.label == "Little Free Library"
        assert ListPurpose.PICKUP.label == "Free"


class TestFuzzLocation:
    """Public coordinates stay near, but not at, the real spot."""

    @pytest.mark.parametrize("latitude", [0.0, 37.87, -60.0])
    async def test_fuzzed_point_within_radius(self, latitude):
        for _ in range(200):
            lat, lng = fuzz_location(latitude, 10.0)
            lng_scale = math.cos(math.radians(latitude))
            distance = math.hypot(lat - latitude, (lng - 10.0) * lng_scale)
            assert distance <= FUZZ_RADIUS_DEGREES + 1e-9

    async def test_deterministic_with_injected_rng(self):
        lat, lng = fuzz_location(0.0, 0.0, rng=lambda: 0.0)
        assert (lat, lng) == (0.0, 0.0)

    async def test_record_keeps_exact_and_fuzzes_public(self):
        record = LocationRecord.build(37.87, -122.27, location_name="Oak St box")

        assert record.exact_latitude == 37.87
        assert record.exact_longitude == -122.27
        assert abs(record.public_latitude - 37.87) <= FUZZ_RADIUS_DEGREES
        assert record.location_name == "Oak St box"
        assert set(record.as_columns()) >= {"exact_latitude", "public_latitude", "city"}

    async def test_invalid_coordinates(self):
        with pytest.raises(ValidationError):
            LocationRecord.build(91.0, 0.0)


class TestGeocoding:
    """Google Maps geocoding client."""

    async def test_parse_geocode_result(self):
        place = parse_geocode_result(GEOCODE_RESULT)

        assert place.city == "Berkeley"
        assert place.country == "United States"
        assert place.location_name == "Berkeley Public Library"
        assert place.latitude == 37.868

    async def test_geocode_address(self):
        def handler(request):
            assert request.url.params["address"] == "2090 Kittredge St"
            assert request.url.params["key"] == "maps-key"
            return httpx.Response(200, json={"status": "OK", "results": [GEOCODE_RESULT]})

        geocoder = GeocodingClient(api_key="maps-key", transport=httpx.MockTransport(handler))

        place = await geocoder.geocode_address(" 2090 Kittredge St ")

        assert place.city == "Berkeley"

    async def test_zero_results_is_not_found(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})
        )
        geocoder = GeocodingClient(api_key="maps-key", transport=transport)

        with pytest.raises(NotFoundError):
            await geocoder.geocode_address("nowhere at all")

    async def test_forward_geocoding_requires_key(self):
        with pytest.raises(ConfigurationError):
            await GeocodingClient(api_key=None).geocode_address("Berkeley")

    async def test_reverse_geocoding_degrades_to_none(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(500))

        assert await GeocodingClient(api_key=None).reverse_geocode(37.87, -122.27) is None
        assert await GeocodingClient(api_key="k", transport=transport).reverse_geocode(37.87, -122.27) is None

    async def test_reverse_geocoding_keeps_requested_point(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, json={"status": "OK", "results": [GEOCODE_RESULT]})
        )
        place = await GeocodingClient(api_key="k", transport=transport).reverse_geocode(37.87, -122.27)

        assert (place.latitude, place.longitude) == (37.87, -122.27)
        assert place.city == "Berkeley"
