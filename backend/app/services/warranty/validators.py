"""
Input validators for the patient registration flow.
"""
import re
import unicodedata
from typing import Optional

SERIAL_NUMBER_PATTERN = re.compile(r"^[0-9]{7}-[0-9]{3}$")

# Letter → combined weight of its two-digit area code (tens*1 + ones*9) mod 10
_TW_AREA_CODE_VALUES = {
    "A": 1, "B": 0, "C": 9, "D": 8, "E": 7, "F": 6, "G": 5, "H": 4, "I": 9,
    "J": 3, "K": 2, "L": 2, "M": 1, "N": 0, "O": 8, "P": 9, "Q": 8, "R": 7,
    "S": 6, "T": 5, "U": 4, "V": 3, "W": 1, "X": 3, "Y": 2, "Z": 0,
}
# Old-style resident certificates carry a letter A-D in the second position
_TW_OLD_RESIDENT_GENDER_VALUES = {"A": 0, "B": 1, "C": 2, "D": 3}
_TW_WEIGHTS = (8, 7, 6, 5, 4, 3, 2, 1, 1)


def is_valid_serial_format(serial_number: Optional[str]) -> bool:
    return bool(serial_number) and SERIAL_NUMBER_PATTERN.fullmatch(serial_number) is not None


def is_valid_taiwan_id(identity: str) -> bool:
    """
    Checksum test for a Taiwan national ID or old-style resident certificate.
    Format: one area letter followed by nine characters; weighted sum % 10 == 0.
    """
    if not identity or len(identity) != 10:
        return False

    value = identity.upper()
    area = _TW_AREA_CODE_VALUES.get(value[0])
    if area is None:
        return False

    total = area
    for i, char in enumerate(value[1:], start=1):
        weight = _TW_WEIGHTS[i - 1]
        if i == 1 and char in _TW_OLD_RESIDENT_GENDER_VALUES:
            total += _TW_OLD_RESIDENT_GENDER_VALUES[char] * weight
            continue
        if not char.isdigit() or not char.isascii():
            return False
        total += int(char) * weight

    return total % 10 == 0


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Trim and drop control characters from free text."""
    if value is None:
        return None
    cleaned = "".join(ch for ch in value if unicodedata.category(ch)[0] != "C")
    return cleaned.strip()
