"""Tests for decoding store payloads into Service / TotpToken."""

from datetime import UTC, datetime

import pytest

from totp_vault.models.service import (
    PayloadError,
    Service,
    TotpAlgorithm,
    decode_service_map,
    decode_token_map,
)

from conftest import service_payload


def test_decode_service_map():
    services = decode_service_map(
        {"a": service_payload("a", algorithm="sha256", digits=8, icon=None)}
    )

    service = services["a"]
    assert isinstance(service, Service)
    assert service.algorithm is TotpAlgorithm.SHA256
    assert service.digits == 8
    assert service.icon == ""


def test_decode_empty_map():
    assert decode_service_map({}) == {}


@pytest.mark.parametrize(
    "payload",
    [
        None,
        ["not", "a", "map"],
        {"a": {"id": "a"}},
        {"a": service_payload("a", algorithm="MD5")},
    ],
)
def test_decode_service_map_rejects_bad_payloads(payload):
    with pytest.raises(PayloadError):
        decode_service_map(payload)


def test_decode_service_map_rejects_mismatched_key():
    with pytest.raises(PayloadError, match="does not match"):
        decode_service_map({"a": service_payload("b")})


def test_with_display_keeps_otp_parameters():
    service = decode_service_map({"a": service_payload("a")})["a"]

    edited = service.with_display(name="New name", icon="")

    assert edited.name == "New name"
    assert edited.issuer == service.issuer
    assert edited.secret == service.secret
    assert service.name == "a"


def test_decode_token_map():
    tokens = decode_token_map({"a": {"token": "123456", "next_step_time": 1_700_000_010}})

    assert tokens["a"].code == "123456"
    assert tokens["a"].next_step_time == datetime.fromtimestamp(1_700_000_010, UTC)
    assert tokens["a"].next_step_time.tzinfo is not None


def test_decode_token_map_rejects_missing_expiry():
    with pytest.raises(PayloadError):
        decode_token_map({"a": {"token": "123456"}})
