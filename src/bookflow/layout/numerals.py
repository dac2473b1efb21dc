"""Page number formatting."""

from __future__ import annotations

from bookflow.document import NumberStyle

_ROMAN_TABLE = (
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
)


def romanize(number: int) -> str:
    """Return *number* as lower-case roman numerals; non-positive input gives ``""``."""
    if number <= 0:
        return ""
    parts: list[str] = []
    remaining = number
    for value, numeral in _ROMAN_TABLE:
        while remaining >= value:
            parts.append(numeral)
            remaining -= value
    return "".join(parts).lower()


def format_page_number(number: int, roman: bool) -> str:
    return romanize(number) if roman else str(number)


def page_label(number: int, front_matter: bool, style: NumberStyle) -> str:
    """Front matter is always roman; other pages follow the numbering style."""
    return format_page_number(number, roman=front_matter or style is NumberStyle.ROMAN)
