"""Tests for QR payload integrity checks."""

import pytest

from redeem_guard.services.payload_integrity import (
    CODE_INVALID_FORMAT,
    CODE_INVALID_LENGTH,
    CODE_TAMPERED_PAYLOAD,
    check_payload,
)


@pytest.mark.parametrize(
    "value",
    [
        "GAN1234567890",
        "abc",
        "https://shop.example.com/giftcard-store/success/ord-42",
        "A" * 500,
    ],
)
def test_accepts_clean_payloads(value: str) -> None:
    assert check_payload(value) is None


@pytest.mark.parametrize("value", [None, 12345, ["GAN"], {"gan": "x"}, ""])
def test_rejects_non_string_payloads(value) -> None:
    violation = check_payload(value)
    assert violation is not None
    assert violation.code == CODE_INVALID_FORMAT
    assert violation.error == "Invalid QR data format"


@pytest.mark.parametrize(
    "value",
    [
        "<script>alert(1)</script>",
        'GAN"123',
        "GAN'123",
        "GAN&123",
        "javascript:alert(1)",
        "JavaScript:void(0)",
        "data:text/html;base64,AAAA",
        "VBScript:msgbox",
        "GAN\x00123",
        "GAN\x1b123",
        "GAN\x7f",
    ],
)
def test_rejects_tampered_payloads(value: str) -> None:
    violation = check_payload(value)
    assert violation is not None
    assert violation.code == CODE_TAMPERED_PAYLOAD
    assert violation.error == "Invalid or tampered QR code detected"


def test_tamper_check_runs_before_length_check() -> None:
    violation = check_payload("<" * 600)
    assert violation is not None
    assert violation.code == CODE_TAMPERED_PAYLOAD


def test_rejects_out_of_bounds_lengths() -> None:
    too_long = check_payload("A" * 501)
    too_short = check_payload("AB")
    assert too_long is not None and too_long.code == CODE_INVALID_LENGTH
    assert too_long.error == "QR data too long"
    assert too_short is not None and too_short.code == CODE_INVALID_LENGTH
    assert too_short.error == "QR data too short"


def test_bounds_are_configurable() -> None:
    assert check_payload("ABCD", min_length=5) is not None
    assert check_payload("ABCDEF", max_length=5) is not None
    assert check_payload("ABCDE", min_length=5, max_length=5) is None
