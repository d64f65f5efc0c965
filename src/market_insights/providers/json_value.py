"""Tagged scalar JSON values for heterogeneous provider arrays.

Some providers pack records into positional arrays mixing integers, floats
and numeric strings (Binance klines: ``[1700000000000, "37000.1", ...]``).
Rows are decoded once at the adapter boundary into ``JsonValue`` cells and
read back through explicit accessors, so no untyped value travels further.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from market_insights.core.exceptions import DecodeError


class JsonKind(StrEnum):
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    BOOL = "bool"
    NULL = "null"


@dataclass(frozen=True, slots=True)
class JsonValue:
    kind: JsonKind
    raw: int | float | str | bool | None

    @classmethod
    def decode(cls, value: Any) -> JsonValue:
        # bool first: it is a subclass of int
        if isinstance(value, bool):
            return cls(JsonKind.BOOL, value)
        if isinstance(value, int):
            return cls(JsonKind.INT, value)
        if isinstance(value, float):
            return cls(JsonKind.FLOAT, value)
        if isinstance(value, str):
            return cls(JsonKind.STRING, value)
        if value is None:
            return cls(JsonKind.NULL, None)
        raise DecodeError(
            f"Expected a JSON scalar, got {type(value).__name__}",
            context={"value": repr(value)[:100]},
        )

    @property
    def is_null(self) -> bool:
        return self.kind == JsonKind.NULL

    def as_int(self) -> int:
        if self.kind == JsonKind.INT:
            return self.raw  # type: ignore[return-value]
        if self.kind == JsonKind.FLOAT and float(self.raw).is_integer():  # type: ignore[arg-type]
            return int(self.raw)  # type: ignore[arg-type]
        raise self._mismatch("int")

    def as_float(self) -> float:
        """Numeric value; numeric strings are accepted (Binance encodes decimals as text)."""
        if self.kind in (JsonKind.INT, JsonKind.FLOAT):
            return float(self.raw)  # type: ignore[arg-type]
        if self.kind == JsonKind.STRING:
            try:
                result = float(self.raw)  # type: ignore[arg-type]
            except ValueError:
                raise self._mismatch("float") from None
            if not math.isfinite(result):
                raise self._mismatch("float")
            return result
        raise self._mismatch("float")

    def as_str(self) -> str:
        if self.kind == JsonKind.STRING:
            return self.raw  # type: ignore[return-value]
        raise self._mismatch("string")

    def as_bool(self) -> bool:
        if self.kind == JsonKind.BOOL:
            return self.raw  # type: ignore[return-value]
        raise self._mismatch("bool")

    def _mismatch(self, wanted: str) -> DecodeError:
        return DecodeError(
            f"Expected {wanted}, got {self.kind.value} {self.raw!r}",
            context={"expected": wanted, "kind": self.kind.value},
        )


def decode_row(row: Any, min_length: int = 0) -> list[JsonValue]:
    """Decode a positional JSON array into tagged cells."""
    if not isinstance(row, list):
        raise DecodeError(
            f"Expected a JSON array row, got {type(row).__name__}",
            context={"row": repr(row)[:100]},
        )
    if len(row) < min_length:
        raise DecodeError(
            f"Row has {len(row)} cells, expected at least {min_length}",
            context={"row": repr(row)[:100]},
        )
    return [JsonValue.decode(cell) for cell in row]
