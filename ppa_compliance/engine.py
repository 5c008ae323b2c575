"""
engine.py — Compliance Analysis Engine.

Runs every detection rule over a batch of procurement records, synthesises
recommendations, rolls findings up into a risk level and confidence, and
records the analysis plus per-supplier risk profiles in an AnalysisStore.

The analysis itself is a pure function of the batch: records are never
mutated, finding ids are content-derived, and the timestamp comes from an
injectable clock. The only side effect is the write into the store, so
callers sharing one store across threads should serialise analyze() calls
if history order matters.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Sequence

from ppa_compliance.config import DEFAULT_THRESHOLDS, analysis_thresholds, load_config
from ppa_compliance.models import (
    AgentAnalysis,
    AgentFinding,
    ProcurementRecord,
    SupplierRiskProfile,
)
from ppa_compliance.recommendations import synthesize_recommendations
from ppa_compliance.records import load_procurements, records_to_frame
from ppa_compliance.rules import (
    detect_award_delays,
    detect_budget_anomalies,
    detect_duplicate_procurements,
    detect_high_value_contracts,
    detect_inappropriate_methods,
    detect_local_content_shortfalls,
    detect_rapid_successive_awards,
    detect_single_bidder,
    detect_supplier_concentration,
)
from ppa_compliance.scoring import (
    build_executive_summary,
    build_supplier_profiles,
    calculate_confidence,
    calculate_overall_risk_level,
)
from ppa_compliance.similarity import KeywordSimilarityDetector, SimilarityDetector
from ppa_compliance.store import AnalysisStore, InMemoryAnalysisStore

logger = logging.getLogger(__name__)


class ComplianceAnalysisEngine:
    """Rule-based compliance, conflict and duplicate analysis over a batch.

    Args:
        thresholds: Rule thresholds; missing keys fall back to
            DEFAULT_THRESHOLDS.
        similarity: Grouping strategy for duplicate detection.
        store: Where analyses and supplier profiles are kept.
        clock: Returns the analysis timestamp, stamped on every finding.
    """

    def __init__(
        self,
        thresholds: dict[str, float] | None = None,
        similarity: SimilarityDetector | None = None,
        store: AnalysisStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.thresholds = {**DEFAULT_THRESHOLDS, **(thresholds or {})}
        self.similarity = similarity or KeywordSimilarityDetector()
        self.store = store or InMemoryAnalysisStore()
        self.clock = clock

    def analyze(self, records: Sequence[ProcurementRecord]) -> AgentAnalysis:
        """Analyse a full batch and record the result in the store.

        Returns:
            AgentAnalysis with findings, recommendations, risk level and
            confidence. issues_identified always equals len(findings) and
            processed_records equals len(records).
        """
        started = self.clock()
        logger.info(
            "Starting procurement compliance analysis for %d records", len(records)
        )

        df = records_to_frame(records)
        findings = self._run_rules(df, started)
        recommendations = synthesize_recommendations(findings)

        analysis = AgentAnalysis(
            id=f"ANALYSIS-{self.store.next_sequence():05d}",
            timestamp=started,
            findings=findings,
            recommendations=recommendations,
            risk_level=calculate_overall_risk_level(findings),
            confidence=calculate_confidence(findings),
            processed_records=len(records),
            issues_identified=len(findings),
        )

        profiles = build_supplier_profiles(df, findings)
        self.store.append_analysis(analysis)
        self.store.upsert_profiles(profiles)

        logger.info(
            "Analysis %s completed: %d findings, %d recommendations | "
            "risk level %s | confidence %.2f",
            analysis.id,
            len(findings),
            len(recommendations),
            analysis.risk_level.value,
            analysis.confidence,
        )
        return analysis

    def _run_rules(self, df, detected_at: datetime) -> list[AgentFinding]:
        t = self.thresholds
        findings: list[AgentFinding] = []
        findings += detect_budget_anomalies(
            df,
            detected_at,
            variance_ratio=t["budget_variance_ratio"],
            high_ratio=t["budget_high_ratio"],
            critical_ratio=t["budget_critical_ratio"],
        )
        findings += detect_local_content_shortfalls(
            df, detected_at, min_pct=t["local_content_min_pct"]
        )
        findings += detect_inappropriate_methods(
            df, detected_at, direct_limit=t["direct_procurement_limit"]
        )
        findings += detect_award_delays(df, detected_at, max_days=t["award_delay_days"])
        findings += detect_supplier_concentration(
            df, detected_at, max_contracts=t["supplier_concentration_max"]
        )
        findings += detect_rapid_successive_awards(
            df, detected_at, min_gap_days=t["successive_award_gap_days"]
        )
        findings += detect_duplicate_procurements(
            df,
            detected_at,
            self.similarity,
            window_days=t["duplicate_window_days"],
        )
        findings += detect_high_value_contracts(
            df, detected_at, threshold=t["high_value_threshold"]
        )
        findings += detect_single_bidder(df, detected_at)
        return findings

    def get_analysis_history(self) -> list[AgentAnalysis]:
        return self.store.history()

    def get_analysis(self, analysis_id: str) -> AgentAnalysis:
        return self.store.get_analysis(analysis_id)

    def get_supplier_risk_profile(self, supplier_name: str) -> SupplierRiskProfile | None:
        return self.store.get_profile(supplier_name)

    def get_all_supplier_risk_profiles(self) -> list[SupplierRiskProfile]:
        return self.store.all_profiles()


def run_analysis(
    config_path: str = "config.yaml",
    input_path: str | None = None,
    engine: ComplianceAnalysisEngine | None = None,
) -> tuple[AgentAnalysis, list[SupplierRiskProfile], dict[str, Any]]:
    """Load configuration and records, run the engine and summarise.

    Args:
        config_path: Path to configuration YAML.
        input_path: Procurement CSV/JSON; defaults to paths.input_data.
        engine: Engine to reuse (keeps its store); a new one is built from
            the config thresholds otherwise.

    Returns:
        Tuple of:
            analysis  — the completed AgentAnalysis
            profiles  — supplier profiles from this run
            summary   — executive summary dict for reporting
    """
    cfg = load_config(config_path)
    records = load_procurements(input_path or cfg["paths"]["input_data"])

    if engine is None:
        engine = ComplianceAnalysisEngine(thresholds=analysis_thresholds(cfg))

    analysis = engine.analyze(records)
    run_suppliers = {r.supplier_name for r in records}
    profiles = [
        p for p in engine.get_all_supplier_risk_profiles()
        if p.supplier_name in run_suppliers
    ]
    currency = cfg.get("project", {}).get("currency", "GHS")
    summary = build_executive_summary(analysis, profiles, currency=currency)
    return analysis, profiles, summary
