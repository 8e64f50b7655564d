import pytest

from core.exceptions import InvalidAddressError
from engine.references import CellRange, in_bounds, is_address, make_address, normalize_address, split_address


def test_split_and_make_address():
    assert split_address("A1") == (1, 1)
    assert split_address("B12") == (12, 2)
    assert split_address("AA3") == (3, 27)
    assert make_address(3, 27) == "AA3"


def test_normalize_address_strips_dollars_and_case():
    assert normalize_address("$b$2") == "B2"
    assert normalize_address("c10") == "C10"


@pytest.mark.parametrize("text", ["", "1A", "A0", "A", "ABCD1", "A1:B2"])
def test_invalid_addresses(text):
    assert not is_address(text)
    with pytest.raises(InvalidAddressError):
        split_address(text)


def test_in_bounds():
    assert in_bounds(1, 1, 10, 5)
    assert in_bounds(10, 5, 10, 5)
    assert not in_bounds(11, 5, 10, 5)
    assert not in_bounds(1, 6, 10, 5)


def test_range_parse_and_expansion():
    cell_range = CellRange.parse("A1:B2")
    assert list(cell_range.addresses()) == ["A1", "B1", "A2", "B2"]
    assert cell_range.size == 4
    assert str(cell_range) == "A1:B2"


def test_reversed_range_is_normalized():
    cell_range = CellRange.from_corners("B3", "A1")
    assert cell_range.top_left == "A1"
    assert cell_range.bottom_right == "B3"


def test_single_address_is_one_cell_range():
    assert list(CellRange.parse("C4").addresses()) == ["C4"]


def test_range_fits():
    assert CellRange.parse("A1:Z100").fits(100, 26)
    assert not CellRange.parse("A1:AA1").fits(100, 26)


def test_range_rejects_extra_colons():
    with pytest.raises(InvalidAddressError):
        CellRange.parse("A1:B2:C3")


def test_range_parse_normalizes_case_dollars_and_corners():
    cell_range = CellRange.parse("$c$3:a1")
    assert str(cell_range) == "A1:C3"


@pytest.mark.parametrize("text", ["", "A:A", "1:3", "A0:B2", "A1:", "A1-B2", "Sheet1!A1"])
def test_range_rejects_malformed_text(text):
    with pytest.raises(InvalidAddressError):
        CellRange.parse(text)


@pytest.mark.parametrize("text", ["A$", "$$A1", "A1$"])
def test_address_rejects_stray_dollars(text):
    assert not is_address(text)
