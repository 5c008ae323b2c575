"""
test_records.py — Unit tests for procurement loading and validation.

Tests cover:
    - camelCase dashboard payloads and snake_case CSV headers
    - Method spelling normalisation ("DIRECT PROCUREMENT")
    - Rejection of unknown enums, missing columns, bad dates and blanks
    - Optional fields falling back to record defaults
    - JSON and CSV file loading
"""

import json
import sys
from pathlib import Path
from datetime import datetime

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from ppa_compliance.exceptions import ProcurementDataError
from ppa_compliance.models import ProcurementCategory, ProcurementMethod
from ppa_compliance.records import load_procurements, records_from_frame, records_to_frame


def _make_raw_row(**overrides) -> dict:
    """A procurement row as exported by the dashboard (camelCase keys)."""
    base = {
        "id": "PROC-001",
        "entityId": "ENT-001",
        "entityName": "Ghana Cocoa Board",
        "supplierId": "SUP-001",
        "supplierName": "Kumasi Agro Supplies",
        "procurementMethod": "OPEN_TENDER",
        "category": "GOODS",
        "estimatedValue": 250000,
        "actualValue": 260000,
        "tenderClosingDate": "2024-03-01T00:00:00Z",
        "contractAwardDate": "2024-04-15T00:00:00Z",
        "description": "Supply of fertiliser for cocoa farms",
        "biddersCount": 4,
        "localContentPercentage": 65,
        "approvedBy": "E.Boateng",
    }
    base.update(overrides)
    return base


class TestRecordsFromFrame:

    def test_camel_case_payload_parsed(self):
        records = records_from_frame(pd.DataFrame([_make_raw_row()]))
        assert len(records) == 1
        record = records[0]
        assert record.entity_name == "Ghana Cocoa Board"
        assert record.procurement_method is ProcurementMethod.OPEN_TENDER
        assert record.category is ProcurementCategory.GOODS
        assert record.actual_value == 260000.0
        assert record.bidders_count == 4
        assert record.contract_award_date == datetime(2024, 4, 15)
        assert record.contract_award_date.tzinfo is None

    def test_spaced_method_spelling_normalised(self):
        row = _make_raw_row(procurementMethod="DIRECT PROCUREMENT")
        record = records_from_frame(pd.DataFrame([row]))[0]
        assert record.procurement_method is ProcurementMethod.DIRECT_PROCUREMENT

    def test_lower_case_category_accepted(self):
        record = records_from_frame(pd.DataFrame([_make_raw_row(category="works")]))[0]
        assert record.category is ProcurementCategory.WORKS

    def test_unknown_method_rejected(self):
        row = _make_raw_row(procurementMethod="EMERGENCY_PURCHASE")
        with pytest.raises(ProcurementDataError, match="procurement_method"):
            records_from_frame(pd.DataFrame([row]))

    def test_missing_required_column_rejected(self):
        row = _make_raw_row()
        del row["actualValue"]
        with pytest.raises(ProcurementDataError, match="actual_value"):
            records_from_frame(pd.DataFrame([row]))

    def test_unparseable_award_date_rejected(self):
        row = _make_raw_row(id="PROC-BAD", contractAwardDate="not a date")
        with pytest.raises(ProcurementDataError, match="PROC-BAD"):
            records_from_frame(pd.DataFrame([row]))

    def test_non_numeric_value_rejected(self):
        row = _make_raw_row(id="PROC-BAD", estimatedValue="n/a")
        with pytest.raises(ProcurementDataError, match="estimated_value"):
            records_from_frame(pd.DataFrame([row]))

    def test_blank_supplier_name_rejected(self):
        row = _make_raw_row(supplierName="   ")
        with pytest.raises(ProcurementDataError, match="supplier_name"):
            records_from_frame(pd.DataFrame([row]))

    def test_missing_optional_fields_use_defaults(self):
        row = _make_raw_row()
        for key in ("description", "biddersCount", "localContentPercentage", "approvedBy"):
            del row[key]
        record = records_from_frame(pd.DataFrame([row]))[0]
        assert record.description == ""
        assert record.bidders_count == 0
        assert record.local_content_percentage == 100.0
        assert record.compliance_score == 100.0
        assert record.currency == "GHS"
        assert record.contract_start_date is None

    @pytest.mark.parametrize(
        "column, value, field",
        [
            ("localContentPercentage", "ten", "local_content_percentage"),
            ("biddersCount", "one", "bidders_count"),
            ("complianceScore", "n/a", "compliance_score"),
            ("contractStartDate", "not a date", "contract_start_date"),
        ],
    )
    def test_malformed_optional_value_rejected(self, column, value, field):
        row = _make_raw_row(id="PROC-BAD", **{column: value})
        with pytest.raises(ProcurementDataError, match=field) as exc_info:
            records_from_frame(pd.DataFrame([_make_raw_row(), row]))
        assert "PROC-BAD" in str(exc_info.value)
        assert "'PROC-001'" not in str(exc_info.value)

    def test_blank_and_null_optional_values_use_defaults(self):
        rows = [
            _make_raw_row(localContentPercentage="", biddersCount=None),
            _make_raw_row(id="PROC-002", localContentPercentage=None, biddersCount="  "),
        ]
        records = records_from_frame(pd.DataFrame(rows))
        assert [r.local_content_percentage for r in records] == [100.0, 100.0]
        assert [r.bidders_count for r in records] == [0, 0]

    def test_unknown_columns_ignored(self):
        row = _make_raw_row(dashboardColour="amber")
        records = records_from_frame(pd.DataFrame([row]))
        assert len(records) == 1


class TestLoadProcurements:

    def test_json_with_procurements_key(self, tmp_path):
        path = tmp_path / "batch.json"
        path.write_text(json.dumps({"procurements": [_make_raw_row(), _make_raw_row(id="PROC-002")]}))
        records = load_procurements(str(path))
        assert [r.id for r in records] == ["PROC-001", "PROC-002"]

    def test_json_list(self, tmp_path):
        path = tmp_path / "batch.json"
        path.write_text(json.dumps([_make_raw_row()]))
        assert len(load_procurements(str(path))) == 1

    def test_csv_with_snake_case_headers(self, tmp_path):
        path = tmp_path / "batch.csv"
        pd.DataFrame(
            [
                {
                    "id": "PROC-010",
                    "entity_id": "ENT-002",
                    "entity_name": "Volta River Authority",
                    "supplier_id": "SUP-010",
                    "supplier_name": "Akosombo Engineering",
                    "procurement_method": "RESTRICTED_TENDER",
                    "category": "WORKS",
                    "estimated_value": 1_200_000,
                    "actual_value": 1_150_000,
                    "tender_closing_date": "2024-02-01",
                    "contract_award_date": "2024-03-01",
                    "compliance_score": "",
                }
            ]
        ).to_csv(path, index=False)
        record = load_procurements(str(path))[0]
        assert record.procurement_method is ProcurementMethod.RESTRICTED_TENDER
        assert record.compliance_score == 100.0
        assert record.tender_closing_date == datetime(2024, 2, 1)

    def test_empty_json_returns_no_records(self, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text(json.dumps({"procurements": []}))
        assert load_procurements(str(path)) == []

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_procurements(str(tmp_path / "absent.csv"))


class TestRecordsToFrame:

    def test_enum_values_and_positions(self):
        records = records_from_frame(
            pd.DataFrame([_make_raw_row(), _make_raw_row(id="PROC-002")])
        )
        df = records_to_frame(records)
        assert df["procurement_method"].tolist() == ["OPEN_TENDER", "OPEN_TENDER"]
        assert df["_position"].tolist() == [0, 1]
        assert pd.api.types.is_datetime64_any_dtype(df["contract_award_date"])

    def test_empty_batch(self):
        df = records_to_frame([])
        assert df.empty
        assert "supplier_name" in df.columns
