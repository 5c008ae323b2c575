"""
test_engine.py — Integration tests for the compliance analysis engine.

Tests cover:
    - Empty batch (vacuous confidence, LOW risk)
    - Result invariants (issues_identified, processed_records)
    - Idempotence of finding and recommendation ids
    - Recommendation gap for timeline and compliance findings
    - Store history, lookups and supplier profile upserts
    - Config threshold overrides
    - run_analysis() and the CLI pipeline end to end
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from datetime import datetime, timedelta

import pandas as pd
import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent))

from ppa_compliance.config import DEFAULT_THRESHOLDS, analysis_thresholds, load_config
from ppa_compliance.engine import ComplianceAnalysisEngine, run_analysis
from ppa_compliance.exceptions import AnalysisNotFoundError
from ppa_compliance.models import (
    FindingType,
    ProcurementCategory,
    ProcurementMethod,
    ProcurementRecord,
    RecommendationPriority,
    Severity,
)
from ppa_compliance.store import InMemoryAnalysisStore

FIXED_NOW = datetime(2024, 7, 1, 7, 0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _make_record(n: int = 1, **overrides) -> ProcurementRecord:
    """A record that trips no rule; `n` keeps supplier and description unique."""
    base = {
        "id": f"PROC-{n:03d}",
        "entity_id": "ENT-001",
        "entity_name": "Ghana Grid Company",
        "supplier_id": f"SUP-{n:03d}",
        "supplier_name": f"Supplier {n:03d}",
        "procurement_method": ProcurementMethod.OPEN_TENDER,
        "category": ProcurementCategory.GOODS,
        "estimated_value": 45_000.0,
        "actual_value": 45_000.0,
        "tender_closing_date": datetime(2024, 1, 1),
        "contract_award_date": datetime(2024, 1, 20),
        "description": f"Transformer item{n:03d} replacement",
        "bidders_count": 3,
        "local_content_percentage": 70.0,
        "compliance_score": 90.0,
        "approved_by": "Y.Asante",
    }
    base.update(overrides)
    return ProcurementRecord(**base)


def _acme_batch() -> list[ProcurementRecord]:
    return [
        _make_record(1, supplier_name="Acme Ltd", contract_award_date=datetime(2024, 1, 1),
                     tender_closing_date=datetime(2023, 12, 1)),
        _make_record(2, supplier_name="Acme Ltd", contract_award_date=datetime(2024, 1, 10)),
        _make_record(3, supplier_name="Acme Ltd", contract_award_date=datetime(2024, 1, 15)),
    ]


@pytest.fixture
def engine():
    return ComplianceAnalysisEngine(clock=lambda: FIXED_NOW)


# ---------------------------------------------------------------------------
# analyze()
# ---------------------------------------------------------------------------

class TestAnalyze:

    def test_empty_batch(self, engine):
        analysis = engine.analyze([])
        assert analysis.findings == []
        assert analysis.recommendations == []
        assert analysis.risk_level is Severity.LOW
        assert analysis.confidence == 1.0
        assert analysis.processed_records == 0
        assert analysis.issues_identified == 0

    def test_clean_batch_has_no_findings(self, engine):
        analysis = engine.analyze([_make_record(i) for i in range(1, 6)])
        assert analysis.findings == []
        assert analysis.processed_records == 5

    def test_counts_match_findings(self, engine):
        records = [
            _make_record(1, actual_value=60_000.0),
            _make_record(2, bidders_count=1),
            _make_record(3, local_content_percentage=10.0),
        ]
        analysis = engine.analyze(records)
        assert analysis.issues_identified == len(analysis.findings) == 3
        assert analysis.processed_records == len(records)

    def test_analysis_metadata(self, engine):
        analysis = engine.analyze([_make_record(1)])
        assert analysis.id == "ANALYSIS-00001"
        assert analysis.timestamp == FIXED_NOW
        assert analysis.analysis_type == "COMPLIANCE_CHECK"
        assert analysis.scope == "FULL_PROCUREMENT_DATASET"

    def test_detected_date_is_analysis_timestamp(self, engine):
        analysis = engine.analyze([_make_record(1, bidders_count=1)])
        assert analysis.findings[0].detected_date == FIXED_NOW

    def test_rapid_successive_awards(self, engine):
        analysis = engine.analyze(_acme_batch())
        assert len(analysis.findings) == 2
        assert {f.rule for f in analysis.findings} == {"rapid_successive_awards"}
        assert all(f.severity is Severity.HIGH for f in analysis.findings)
        assert analysis.confidence == pytest.approx(0.90)
        assert analysis.risk_level is Severity.MEDIUM

        assert len(analysis.recommendations) == 1
        rec = analysis.recommendations[0]
        assert rec.priority is RecommendationPriority.URGENT
        assert rec.related_findings == [f.id for f in analysis.findings]

    def test_one_record_can_trigger_several_rules(self, engine):
        record = _make_record(
            1,
            procurement_method=ProcurementMethod.DIRECT_PROCUREMENT,
            estimated_value=100_000.0,
            actual_value=160_000.0,
            bidders_count=1,
        )
        rules = [f.rule for f in engine.analyze([record]).findings]
        assert rules == ["budget_anomaly", "inappropriate_method", "single_bidder"]

    def test_critical_overrun_sets_risk_level(self, engine):
        analysis = engine.analyze([_make_record(1, actual_value=45_000.0 * 1.6)])
        assert analysis.risk_level is Severity.CRITICAL
        assert [r.id.split("-")[1] for r in analysis.recommendations] == ["BUD"]

    def test_four_high_findings_is_high_risk(self, engine):
        analysis = engine.analyze([_make_record(i, bidders_count=1) for i in range(1, 5)])
        assert analysis.risk_level is Severity.HIGH


class TestRecommendationGap:

    def test_timeline_only_batch_has_no_recommendations(self, engine):
        record = _make_record(
            1,
            tender_closing_date=datetime(2024, 1, 1),
            contract_award_date=datetime(2024, 4, 15),
        )
        analysis = engine.analyze([record])
        assert [f.type for f in analysis.findings] == [FindingType.TIMELINE_VIOLATION]
        assert analysis.recommendations == []
        assert analysis.confidence == pytest.approx(0.92)
        assert analysis.risk_level is Severity.LOW

    def test_compliance_violations_have_no_recommendations(self, engine):
        analysis = engine.analyze([_make_record(i, bidders_count=1) for i in range(1, 3)])
        assert {f.type for f in analysis.findings} == {FindingType.COMPLIANCE_VIOLATION}
        assert analysis.recommendations == []


class TestIdempotence:

    def test_same_batch_same_ids(self, engine):
        records = _acme_batch() + [_make_record(9, actual_value=80_000.0)]
        first = engine.analyze(records)
        second = engine.analyze(records)
        assert [f.id for f in first.findings] == [f.id for f in second.findings]
        assert first.findings == second.findings
        assert [r.id for r in first.recommendations] == [r.id for r in second.recommendations]
        assert first.id != second.id

    def test_separate_engines_agree(self):
        records = _acme_batch()
        a = ComplianceAnalysisEngine(clock=lambda: FIXED_NOW).analyze(records)
        b = ComplianceAnalysisEngine(clock=lambda: FIXED_NOW).analyze(records)
        assert a.to_dict() == b.to_dict()

    def test_input_records_untouched(self, engine):
        records = _acme_batch()
        before = [r.to_dict() for r in records]
        engine.analyze(records)
        assert [r.to_dict() for r in records] == before


# ---------------------------------------------------------------------------
# Store and accessors
# ---------------------------------------------------------------------------

class TestStore:

    def test_history_accumulates(self, engine):
        engine.analyze([_make_record(1)])
        engine.analyze([_make_record(2)])
        assert [a.id for a in engine.get_analysis_history()] == [
            "ANALYSIS-00001",
            "ANALYSIS-00002",
        ]

    def test_get_analysis(self, engine):
        analysis = engine.analyze([_make_record(1)])
        assert engine.get_analysis(analysis.id) is analysis

    def test_unknown_analysis_raises(self, engine):
        with pytest.raises(AnalysisNotFoundError):
            engine.get_analysis("ANALYSIS-99999")

    def test_supplier_profile_lookup(self, engine):
        engine.analyze(_acme_batch())
        profile = engine.get_supplier_risk_profile("Acme Ltd")
        # 50 + 15 + 15 + (100 - 90) * 0.2
        assert profile.risk_score == 82.0
        assert profile.contract_history.total_contracts == 3
        assert profile.contract_history.compliance_issues == 2
        assert engine.get_supplier_risk_profile("Unknown Ltd") is None

    def test_profiles_overwritten_by_later_run(self, engine):
        engine.analyze(_acme_batch())
        engine.analyze([_make_record(1, supplier_name="Acme Ltd")])
        profile = engine.get_supplier_risk_profile("Acme Ltd")
        assert profile.contract_history.total_contracts == 1
        assert profile.risk_score == 52.0

    def test_all_profiles(self, engine):
        engine.analyze([_make_record(1), _make_record(2)])
        engine.analyze([_make_record(3)])
        names = {p.supplier_name for p in engine.get_all_supplier_risk_profiles()}
        assert names == {"Supplier 001", "Supplier 002", "Supplier 003"}

    def test_shared_store_continues_sequence(self):
        store = InMemoryAnalysisStore()
        ComplianceAnalysisEngine(store=store).analyze([])
        analysis = ComplianceAnalysisEngine(store=store).analyze([])
        assert analysis.id == "ANALYSIS-00002"
        assert len(store.history()) == 2


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestConfig:

    def test_defaults_without_analysis_section(self):
        assert analysis_thresholds({}) == DEFAULT_THRESHOLDS

    def test_override_merged(self):
        thresholds = analysis_thresholds({"analysis": {"award_delay_days": 60}})
        assert thresholds["award_delay_days"] == 60
        assert thresholds["budget_variance_ratio"] == 1.1

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="award_delay"):
            analysis_thresholds({"analysis": {"award_delay": 60}})

    def test_engine_honours_thresholds(self):
        engine = ComplianceAnalysisEngine(thresholds={"award_delay_days": 10})
        analysis = engine.analyze([_make_record(1)])
        assert [f.rule for f in analysis.findings] == ["award_delay"]

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

def _write_config(tmp_path: Path, input_path: Path) -> Path:
    cfg = {
        "project": {"name": "PPA Compliance Agent", "currency": "GHS"},
        "paths": {
            "input_data": str(input_path),
            "output_dir": str(tmp_path / "output"),
            "report_filename": "report_{date}.xlsx",
            "json_filename": "analysis_{date}.json",
            "log_dir": str(tmp_path / "logs"),
        },
        "analysis": {"supplier_concentration_max": 2},
    }
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(cfg))
    return config_path


def _write_batch_csv(tmp_path: Path) -> Path:
    rows = []
    for i in range(1, 4):
        award = datetime(2024, 1, 5) + timedelta(days=45 * i)
        rows.append(
            {
                "id": f"PROC-{i:03d}",
                "entity_id": "ENT-004",
                "entity_name": "Ghana Highway Authority",
                "supplier_id": "SUP-050",
                "supplier_name": "Accra Road Works",
                "procurement_method": "DIRECT PROCUREMENT",
                "category": "WORKS",
                "estimated_value": 40_000,
                "actual_value": 40_000,
                "tender_closing_date": (award - timedelta(days=20)).strftime("%Y-%m-%d"),
                "contract_award_date": award.strftime("%Y-%m-%d"),
                "description": f"Resurfacing lot{i:03d} road",
                "bidders_count": 2,
                "local_content_percentage": 90,
            }
        )
    path = tmp_path / "procurements.csv"
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


class TestRunAnalysis:

    def test_config_thresholds_and_summary(self, tmp_path):
        config_path = _write_config(tmp_path, _write_batch_csv(tmp_path))
        analysis, profiles, summary = run_analysis(str(config_path))

        # three contracts exceed the lowered concentration limit of two
        assert [f.rule for f in analysis.findings] == ["supplier_concentration"]
        assert [p.supplier_name for p in profiles] == ["Accra Road Works"]
        assert summary["total_records_analysed"] == 3
        assert summary["total_findings"] == 1
        assert summary["headline_exposure"] == pytest.approx(120_000.0)
        assert summary["top_suppliers"] == {"Accra Road Works": profiles[0].risk_score}

    def test_reused_engine_reports_only_this_run(self, tmp_path):
        config_path = _write_config(tmp_path, _write_batch_csv(tmp_path))
        engine = ComplianceAnalysisEngine()
        engine.analyze([_make_record(1)])
        analysis, profiles, _ = run_analysis(str(config_path), engine=engine)
        assert analysis.id == "ANALYSIS-00002"
        assert [p.supplier_name for p in profiles] == ["Accra Road Works"]


class TestPipeline:

    def _args(self, config_path, **flags):
        args = {
            "config": str(config_path),
            "input": None,
            "log_level": "INFO",
            "analyze": False,
            "report": False,
            "export_json": False,
            "full_run": False,
        }
        args.update(flags)
        return argparse.Namespace(**args)

    def test_full_run_writes_outputs(self, tmp_path):
        from main import run_pipeline

        config_path = _write_config(tmp_path, _write_batch_csv(tmp_path))
        exit_code = run_pipeline(
            self._args(config_path, full_run=True), logging.getLogger("test")
        )
        assert exit_code == 0

        outputs = tmp_path / "output"
        assert len(list(outputs.glob("report_*.xlsx"))) == 1
        json_file = next(outputs.glob("analysis_*.json"))
        payload = json.loads(json_file.read_text())
        assert payload["analysis"]["issues_identified"] == 1
        assert payload["supplier_risk_profiles"][0]["supplier_name"] == "Accra Road Works"

    def test_missing_input_returns_error(self, tmp_path):
        from main import run_pipeline

        config_path = _write_config(tmp_path, tmp_path / "absent.csv")
        exit_code = run_pipeline(
            self._args(config_path, analyze=True), logging.getLogger("test")
        )
        assert exit_code == 1

    def test_invalid_data_returns_error(self, tmp_path):
        from main import run_pipeline

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps([{"id": "PROC-001"}]))
        config_path = _write_config(tmp_path, bad)
        exit_code = run_pipeline(
            self._args(config_path, analyze=True), logging.getLogger("test")
        )
        assert exit_code == 1
