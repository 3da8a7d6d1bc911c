from ghcmodi.document import is_position_in_range, offset_at, symbol_at_offset
from ghcmodi.types import Position, Range


def test_offset_at_maps_lines_and_clamps() -> None:
    text = "ab\ncde\nf"
    assert offset_at(text, Position(0, 0)) == 0
    assert offset_at(text, Position(1, 2)) == 5
    assert offset_at(text, Position(1, 99)) == 6
    assert offset_at(text, Position(9, 0)) == len(text)


def test_identifier_under_cursor() -> None:
    text = "main = foldr' go x1"
    assert symbol_at_offset(text, 0) == "main"
    assert symbol_at_offset(text, 10) == "foldr'"
    assert symbol_at_offset(text, 18) == "x1"


def test_operator_under_cursor() -> None:
    text = "xs >>= f . g"
    assert symbol_at_offset(text, 3) == ">>="
    assert symbol_at_offset(text, 9) == "."


def test_comments_are_not_symbols() -> None:
    assert symbol_at_offset("x -- note", 3) == ""
    assert symbol_at_offset("{- c -}", 1) == ""
    assert symbol_at_offset("{- c -}", 5) == ""


def test_nothing_under_cursor() -> None:
    assert symbol_at_offset("a  b", 1) == ""
    assert symbol_at_offset("", 0) == ""
    assert symbol_at_offset(None, 0) == ""
    assert symbol_at_offset("abc", 10) == ""
    assert symbol_at_offset("1234", 1) == ""


def test_position_in_range() -> None:
    type_range = Range.create(2, 7, 2, 8)
    assert is_position_in_range(Position(2, 7), type_range)
    assert is_position_in_range(Position(2, 8), type_range)
    assert not is_position_in_range(Position(2, 9), type_range)
    assert not is_position_in_range(Position(3, 7), type_range)
    assert not is_position_in_range(None, type_range)
    assert not is_position_in_range(Position(0, 0), None)


def test_underscore_identifiers_are_symbols() -> None:
    text = "go _unused = x_1"
    assert symbol_at_offset(text, 5) == "_unused"
    assert symbol_at_offset(text, 15) == "x_1"
    assert symbol_at_offset("f 'a'", 3) == ""
