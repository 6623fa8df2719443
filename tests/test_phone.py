"""Tests for phone number normalization."""

import pytest

from backoffice.core.exceptions import InvalidPhoneNumberError
from backoffice.core.phone import normalize_phone_e164, normalize_phone_for_dedup


@pytest.mark.parametrize(
    "raw",
    ["07700 900123", "+44 7700 900123", "0044 7700 900123", "447700900123", "7700900123"],
)
def test_uk_numbers_normalize_to_e164(raw):
    assert normalize_phone_e164(raw) == "+447700900123"


def test_international_number_keeps_its_country_code():
    assert normalize_phone_e164("+1 (415) 555-0100") == "+14155550100"


def test_explicit_default_country_code():
    assert normalize_phone_e164("0612345678", default_country_code="33") == "+33612345678"


@pytest.mark.parametrize("raw", ["", "   ", None, "123", "+1234567890123456"])
def test_invalid_numbers_raise(raw):
    with pytest.raises(InvalidPhoneNumberError):
        normalize_phone_e164(raw)


def test_normalize_phone_for_dedup_strips_whitespace():
    assert normalize_phone_for_dedup("+44 7700 900123") == "+447700900123"
