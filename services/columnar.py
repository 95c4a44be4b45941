"""Parsing and decoding of the sensor network's columnar JSON responses."""

from __future__ import annotations

import json
from typing import Any, List

from pydantic import BaseModel, ValidationError, model_validator

from models.records import SensorRecord

# The server sometimes emits an empty data array followed by a comma before
# the rows, e.g. ``"data":[],[1,2],[3,4]]``.
_MALFORMED_DATA_PREFIX = '"data":[],'
_REPAIRED_DATA_PREFIX = '"data":['


class DecodeError(ValueError):
    """Raised when a response body cannot be turned into a columnar payload."""

    def __init__(self, message: str, raw: str) -> None:
        super().__init__(message)
        self.raw = raw


class ColumnarPayload(BaseModel):
    """Field names stored once, with rows positionally aligned to them."""

    fields: List[str]
    data: List[List[Any]]

    @model_validator(mode="after")
    def _check_alignment(self) -> "ColumnarPayload":
        if len(set(self.fields)) != len(self.fields):
            raise ValueError("Field names must be distinct.")
        width = len(self.fields)
        for index, row in enumerate(self.data):
            if len(row) != width:
                raise ValueError(
                    f"Row {index} has {len(row)} values but {width} fields were declared."
                )
        return self


def _loads_with_repair(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as original:
        if _MALFORMED_DATA_PREFIX not in raw:
            raise DecodeError(f"Response is not valid JSON: {original}", raw) from original
        repaired = raw.replace(_MALFORMED_DATA_PREFIX, _REPAIRED_DATA_PREFIX, 1)
        try:
            return json.loads(repaired)
        except json.JSONDecodeError:
            raise DecodeError(f"Response is not valid JSON: {original}", raw) from original


def parse_columnar(raw: str) -> ColumnarPayload:
    """Parse a response body, repairing the known empty-data-array defect once."""
    document = _loads_with_repair(raw)
    try:
        return ColumnarPayload.model_validate(document)
    except ValidationError as exc:
        raise DecodeError(f"Response is not a columnar payload: {exc}", raw) from exc


def to_records(payload: ColumnarPayload) -> List[SensorRecord]:
    """Zip every data row against the field names, preserving row order."""
    return [dict(zip(payload.fields, row)) for row in payload.data]
