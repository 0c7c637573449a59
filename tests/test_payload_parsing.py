from __future__ import annotations

import pytest

from rastreamento.Schemas.events import DeliveryStatusPayload, InvoiceStatusPayload, PositionUpdate
from rastreamento.Services.payload_core import (
    DELIVERED_STATUSES,
    is_delivered_status,
    parse_event_payload,
    validate_event_payload,
)


def test_dict_payload_is_returned_as_is() -> None:
    data = {"deviceId": "A"}
    assert parse_event_payload(data) is data


@pytest.mark.parametrize(
    "raw",
    [
        '{"deviceId": "A"}',
        b'{"deviceId": "A"}',
        'noise {"deviceId": "A"} trailing',
        "{'deviceId': 'A'}",
    ],
)
def test_string_payload_fallbacks(raw) -> None:
    assert parse_event_payload(raw) == {"deviceId": "A"}


@pytest.mark.parametrize("raw", [None, 12, "", "[1, 2]", "not json", ["a"]])
def test_unrecoverable_payloads(raw) -> None:
    assert parse_event_payload(raw) is None


def test_validation_drops_invalid_payload() -> None:
    assert validate_event_payload(InvoiceStatusPayload, {"status": "delivered"}, "nf-baixa") is None
    assert validate_event_payload(PositionUpdate, "garbage", "posicao-atual") is None


def test_validation_coerces_nd_and_blank_device_id() -> None:
    payload = validate_event_payload(
        InvoiceStatusPayload, {"deviceId": "  ", "nd": 77, "status": " delivered "}, "nf-status-changed"
    )

    assert payload.deviceId is None
    assert payload.nd == "77"
    assert payload.status == "delivered"


def test_extra_keys_survive_validation() -> None:
    payload = validate_event_payload(
        DeliveryStatusPayload, {"nd": "N1", "status": "entregue", "recebedor": "Ana"}, "delivery-status-update"
    )

    assert payload.source is None
    assert payload.model_extra == {"recebedor": "Ana"}


@pytest.mark.parametrize("status", sorted(DELIVERED_STATUSES) + ["Delivered", " ENTREGUE ", "Concluída"])
def test_delivered_statuses(status) -> None:
    assert is_delivered_status(status) is True


@pytest.mark.parametrize("status", ["pending", "in-transit", "", None, 1, "concluida"])
def test_not_delivered_statuses(status) -> None:
    assert is_delivered_status(status) is False
