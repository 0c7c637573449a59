from __future__ import annotations

import math

import pytest

from rastreamento.Models.device import Coordinate, Destination
from rastreamento.Services.payload_core import (
    coerce_number,
    normalize_coordinate,
    normalize_destination,
    normalize_destinations,
    normalize_invoice,
    normalize_timestamp_ms,
)


def test_destination_tuple_with_metadata() -> None:
    assert normalize_destination([1, 2, {"endereco": "X", "nd": "N1"}]) == Destination(
        lat=1, lng=2, endereco="X", nd="N1"
    )


def test_destination_latitude_longitude_object() -> None:
    result = normalize_destination({"latitude": -23.5, "longitude": -46.6, "endereco": "Rua A", "nd": 7})

    assert result == Destination(lat=-23.5, lng=-46.6, endereco="Rua A", nd="7")
    assert result.to_payload() == {"lat": -23.5, "lng": -46.6, "endereco": "Rua A", "nd": "7"}


def test_destination_bare_pair_has_no_metadata() -> None:
    result = normalize_destination([9, 9])

    assert result.to_payload() == {"lat": 9.0, "lng": 9.0}


@pytest.mark.parametrize(
    "item",
    [
        [1, 2, "not-a-dict"],
        [float("nan"), 2],
        {"latitude": "abc", "longitude": 1},
        {"latitude": math.nan, "longitude": 1},
        [1],
        "1,2",
        None,
        [1, 2, 3, 4],
    ],
)
def test_unrecognized_destination_shapes_are_discarded(item) -> None:
    assert normalize_destination(item) is None


def test_destination_list_keeps_good_entries_in_order() -> None:
    result = normalize_destinations([[1, 2], "junk", {"latitude": 3, "longitude": 4}, [5, 6, {"nd": "N3"}]])

    assert [(d.lat, d.lng, d.nd) for d in result] == [(1, 2, None), (3, 4, None), (5, 6, "N3")]


def test_destination_payload_that_is_not_a_list() -> None:
    assert normalize_destinations({"lat": 1, "lng": 2}, "A") == []
    assert normalize_destinations(None) == []


@pytest.mark.parametrize(
    "value, expected",
    [
        ([10, 20], Coordinate(lat=10, lng=20)),
        ({"lat": "10,5", "lng": "20"}, Coordinate(lat=10.5, lng=20)),
        ({"latitude": 1, "longitude": 2}, Coordinate(lat=1, lng=2)),
        ({"lat": 1, "lon": 2}, Coordinate(lat=1, lng=2)),
    ],
)
def test_coordinate_shapes(value, expected) -> None:
    assert normalize_coordinate(value) == expected


@pytest.mark.parametrize("value", [[91, 0], [0, 181], [None, 1], ["x", 1], 5, [True, False]])
def test_invalid_coordinates(value) -> None:
    assert normalize_coordinate(value) is None


def test_coerce_number() -> None:
    assert coerce_number("-23,55") == -23.55
    assert coerce_number(" 12 ") == 12.0
    assert coerce_number("null") is None
    assert coerce_number("") is None
    assert coerce_number(True) is None
    assert coerce_number("abc") == "abc"


def test_timestamp_numbers_are_kept_as_milliseconds() -> None:
    assert normalize_timestamp_ms(1000) == 1000.0
    assert normalize_timestamp_ms("35000") == 35000.0


def test_timestamp_iso_string() -> None:
    assert normalize_timestamp_ms("1970-01-01T00:00:01Z") == 1000.0
    assert normalize_timestamp_ms("1970-01-01T00:00:02") == 2000.0


def test_timestamp_falls_back_to_clock() -> None:
    assert normalize_timestamp_ms(None, lambda: 42.0) == 42.0
    assert normalize_timestamp_ms("yesterday", lambda: 42.0) == 42.0
    assert normalize_timestamp_ms(float("nan"), lambda: 42.0) == 42.0


def test_invoice_requires_nd() -> None:
    assert normalize_invoice({"status": "pending"}) is None
    assert normalize_invoice({"nd": "  "}) is None
    assert normalize_invoice("N1") is None


def test_invoice_drops_nulls_and_device_id() -> None:
    assert normalize_invoice({"nd": 123, "status": "pending", "nfe": None, "deviceId": "A"}) == {
        "nd": "123",
        "status": "pending",
    }


@pytest.mark.parametrize(
    "status, expected",
    [(1, "1"), (2.5, "2.5"), ("  entregue ", "entregue")],
)
def test_invoice_status_is_coerced_to_text(status, expected) -> None:
    assert normalize_invoice({"nd": "N1", "status": status})["status"] == expected


@pytest.mark.parametrize("status", [{"code": 1}, [1], True, "   "])
def test_invoice_status_of_unusable_type_is_dropped(status) -> None:
    assert normalize_invoice({"nd": "N1", "status": status}) == {"nd": "N1"}
