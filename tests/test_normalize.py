from __future__ import annotations

from datetime import date

import pytest

from registration_desk.domain.constants import CHECK_MANUALLY
from registration_desk.domain.normalize import (
    city_from_address,
    clean_field_value,
    normalize_header,
    parse_amount,
    parse_form_date,
)


@pytest.mark.parametrize(
    "raw, expected",
    [("5000", 5000.0), ("₹ 5,000/-", 5000.0), ("", 0.0), (None, 0.0), ("Rs. 1.2.3", 0.0), (2500, 2500.0)],
)
def test_parse_amount(raw, expected) -> None:
    assert parse_amount(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("01/05/2024", date(2024, 5, 1)),
        ("1.5.24", date(2024, 5, 1)),
        ("31-12-2023", date(2023, 12, 31)),
        ("31/02/2024", None),
        ("2024-05-01", None),
        ("", None),
        (CHECK_MANUALLY, None),
    ],
)
def test_parse_form_date(raw, expected) -> None:
    assert parse_form_date(raw) == expected


def test_clean_field_value_keeps_sentinel() -> None:
    assert clean_field_value(" : Indore __ ") == "Indore"
    assert clean_field_value(CHECK_MANUALLY) == CHECK_MANUALLY
    assert clean_field_value(None) == ""


def test_headers_and_cities() -> None:
    assert normalize_header("Admission ID") == "admission_id"
    assert normalize_header(" Contact-No. ") == "contact_no"
    assert city_from_address("House 4, Sector 7, Bhopal 462") == "bhopal"
    assert city_from_address("") is None
