from propscrape.normalize.address import parse_address
from propscrape.normalize.fields import clean_text, parse_count, parse_price, parse_size


def test_price_keeps_only_digits():
    assert parse_price("R 1,250,000") == 1250000
    assert parse_price("R 300 000") == 300000


def test_price_without_digits_is_absent():
    assert parse_price("Contact us") is None
    assert parse_price("") is None
    assert parse_price(None) is None


def test_counts_reject_out_of_range_values():
    assert parse_count("3 Bedrooms") == 3
    assert parse_count("Studio") is None
    assert parse_count("99999") is None


def test_sizes_keep_decimal_point():
    assert parse_size("450.5 m²") == 450.5
    assert parse_size("210 m²") == 210.0
    assert parse_size("1.2.3 ha") is None
    assert parse_size("n/a") is None


def test_clean_text_trims():
    assert clean_text("  Seaside Cottage \n") == "Seaside Cottage"
    assert clean_text(None) == ""


def test_address_with_suburb_city_and_province():
    parts = parse_address("Sandton, Johannesburg, Gauteng")
    assert parts.province == "Gauteng"
    assert parts.city == "Johannesburg"
    assert parts.suburb == "Sandton"


def test_address_with_city_and_province():
    parts = parse_address("Pretoria, Gauteng")
    assert parts.province == "Gauteng"
    assert parts.city == "Pretoria"
    assert parts.suburb is None


def test_address_with_city_only():
    parts = parse_address("Cape Town")
    assert parts.province is None
    assert parts.province_label == "Unknown"
    assert parts.city == "Cape Town"
    assert parts.suburb is None


def test_address_with_many_parts_uses_outer_components():
    parts = parse_address("12 Main Rd, Rondebosch, Cape Town, Western Cape")
    assert parts.province == "Western Cape"
    assert parts.city == "Cape Town"
    assert parts.suburb == "12 Main Rd"


def test_price_beyond_64_bit_range_is_absent():
    assert parse_price("Ref 123456789012345678901234") is None
    assert parse_price("9223372036854775807") == 2**63 - 1
    assert parse_price("9223372036854775808") is None
