"""
Row serialization for delimited output.

Every value becomes its plain text form. NULL becomes an empty field, raw
bytes are decoded as UTF-8 and everything else goes through ``str``.
"""
from typing import Any, List, Sequence


def serialize_value(value: Any) -> str:
    """Convert one column value to the text written to the output file"""
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def serialize_row(row: Sequence[Any]) -> List[str]:
    """Convert one result row to an ordered list of text fields"""
    return [serialize_value(value) for value in row]
