import pytest

from core.enums import CellType
from engine.classifier import classify, coerce, parse_input


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("=A1+1", CellType.FORMULA),
        ("=", CellType.FORMULA),
        ("42", CellType.NUMBER),
        ("-3.5", CellType.NUMBER),
        (".5", CellType.NUMBER),
        ("1e3", CellType.NUMBER),
        ("true", CellType.BOOLEAN),
        ("FALSE", CellType.BOOLEAN),
        ("2024-01-31", CellType.DATE),
        ("hello", CellType.TEXT),
        ("", CellType.TEXT),
        ("0x1F", CellType.NUMBER),
        ("-0x1F", CellType.TEXT),
        ("1e999", CellType.TEXT),
        ("1_000", CellType.TEXT),
        ("inf", CellType.TEXT),
        ("nan", CellType.TEXT),
        ("2024/01/31", CellType.TEXT),
    ],
)
def test_classify(raw, expected):
    assert classify(raw) == expected


def test_formula_wins_over_other_rules():
    assert classify("=true") == CellType.FORMULA
    assert classify("=2024-01-01") == CellType.FORMULA


def test_coerce_numbers_keep_integers():
    assert coerce("42", CellType.NUMBER) == 42
    assert isinstance(coerce("42", CellType.NUMBER), int)
    assert coerce("2.5", CellType.NUMBER) == 2.5


def test_coerce_booleans_and_text():
    assert coerce("True", CellType.BOOLEAN) is True
    assert coerce("false", CellType.BOOLEAN) is False
    assert coerce("2024-01-31", CellType.DATE) == "2024-01-31"
    assert coerce("hello", CellType.TEXT) == "hello"


def test_coerce_rejects_formula():
    with pytest.raises(ValueError):
        coerce("=1", CellType.FORMULA)


def test_parse_input_returns_type_and_value():
    assert parse_input("7") == (CellType.NUMBER, 7)
    assert parse_input("=1+1") == (CellType.FORMULA, "=1+1")


def test_radix_literals_are_numbers():
    assert parse_input("0x1F") == (CellType.NUMBER, 31)
    assert parse_input("0b101") == (CellType.NUMBER, 5)
    assert parse_input("0o17") == (CellType.NUMBER, 15)
    assert parse_input(" 0XFF ") == (CellType.NUMBER, 255)
    assert classify("0x") == CellType.TEXT
    assert classify("0b102") == CellType.TEXT


def test_overflowing_numerals_stay_text():
    assert parse_input("1e999") == (CellType.TEXT, "1e999")
    assert parse_input("-1e400") == (CellType.TEXT, "-1e400")
    with pytest.raises(ValueError):
        coerce("1e999", CellType.NUMBER)


def test_numerals_past_the_digit_limit():
    digits = "9" * 5000
    assert classify(digits) == CellType.TEXT
    with pytest.raises(ValueError):
        coerce(digits, CellType.NUMBER)
    wide = "1" + "0" * 400
    assert parse_input(wide) == (CellType.NUMBER, 10 ** 400)
