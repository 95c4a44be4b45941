"""Tests for the tolerant columnar parser and the record decoder."""

from __future__ import annotations

import json

import pytest

from services.columnar import ColumnarPayload, DecodeError, parse_columnar, to_records


def test_parse_well_formed_payload() -> None:
    payload = parse_columnar('{"fields":["A","B"],"data":[[1,2],[3,4]]}')

    assert payload.fields == ["A", "B"]
    assert payload.data == [[1, 2], [3, 4]]


def test_parse_recovers_from_empty_data_array_defect() -> None:
    well_formed = parse_columnar('{"fields":["A","B"],"data":[[1,2],[3,4]]}')
    recovered = parse_columnar('{"fields":["A","B"],"data":[],[1,2],[3,4]]}')

    assert recovered == well_formed


def test_parse_recovers_single_field_payload() -> None:
    recovered = parse_columnar('{"fields":["A"],"data":[],[1]]}')

    assert recovered == ColumnarPayload(fields=["A"], data=[[1]])


def test_truncated_json_is_a_decode_error() -> None:
    raw = '{"fields":["A"],"data":[[1]'

    with pytest.raises(DecodeError) as excinfo:
        parse_columnar(raw)

    assert excinfo.value.raw == raw
    assert isinstance(excinfo.value.__cause__, json.JSONDecodeError)


def test_failed_repair_surfaces_original_error() -> None:
    raw = '{"fields":["A"],"data":[],[1]'

    with pytest.raises(DecodeError) as excinfo:
        parse_columnar(raw)

    cause = excinfo.value.__cause__
    assert isinstance(cause, json.JSONDecodeError)
    assert cause.doc == raw
    assert excinfo.value.raw == raw


def test_row_width_mismatch_is_a_decode_error() -> None:
    with pytest.raises(DecodeError) as excinfo:
        parse_columnar('{"fields":["A","B"],"data":[[1,2],[3]]}')

    assert "Row 1" in str(excinfo.value)


def test_non_columnar_document_is_a_decode_error() -> None:
    with pytest.raises(DecodeError):
        parse_columnar('[1, 2, 3]')

    with pytest.raises(DecodeError):
        parse_columnar('{"fields":["A"]}')


def test_duplicate_field_names_are_rejected() -> None:
    with pytest.raises(DecodeError):
        parse_columnar('{"fields":["A","A"],"data":[[1,2]]}')


def test_to_records_pairs_fields_with_rows_in_order() -> None:
    payload = ColumnarPayload(fields=["A", "B"], data=[[1, 2], [3, 4]])

    assert to_records(payload) == [{"A": 1, "B": 2}, {"A": 3, "B": 4}]


def test_to_records_emits_one_record_per_row() -> None:
    payload = ColumnarPayload(fields=["ID"], data=[[1], [2], [3], [2]])

    records = to_records(payload)

    assert [record["ID"] for record in records] == [1, 2, 3, 2]


def test_to_records_with_no_rows() -> None:
    assert to_records(ColumnarPayload(fields=["ID"], data=[])) == []
