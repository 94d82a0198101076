import pytest

from inpigreffe.siren import format_siren, validate_and_extract_siren


@pytest.mark.parametrize(
    "value, expected",
    [
        ("552100554", "552100554"),
        ("552 100 554", "552100554"),
        ("552-100-554", "552100554"),
        ("55210055400013", "552100554"),
        ("552.100.554.00013", "552100554"),
        ("", None),
        (None, None),
        ("55210055", None),
        ("5521005540001", None),
        ("55210055A", None),
    ],
)
def test_validate_and_extract_siren(value, expected):
    assert validate_and_extract_siren(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("552100554", "552\u00a0100\u00a0554"),
        ("552 100 554", "552\u00a0100\u00a0554"),
        ("552\u00a0100\u00a0554", "552\u00a0100\u00a0554"),
        ("12345", "12345"),
        ("", ""),
    ],
)
def test_format_siren(value, expected):
    assert format_siren(value) == expected
