"""
scoring.py — Aggregate risk, confidence and supplier risk scoring.

Turns a run's findings into the headline figures of an analysis:
    - Overall risk level   — worst-case roll-up of finding severities
    - Confidence           — mean of per-rule fixed confidences
    - Supplier profiles    — weighted accumulator per supplier (0–100)
    - Executive summary    — counts and exposure for reporting

Supplier risk scores are a simple additive heuristic, not a model
calibrated against audit outcomes:
    50 base
    + 25 / 15 / 10 / 5 per CRITICAL / HIGH / MEDIUM / LOW finding
    + (100 − mean compliance score) × 0.2
    clamped to [0, 100]
"""

import logging
from typing import Any

import pandas as pd

from ppa_compliance.models import (
    AgentAnalysis,
    AgentFinding,
    ContractHistory,
    Severity,
    SupplierRiskProfile,
)

logger = logging.getLogger(__name__)

BASE_SUPPLIER_SCORE = 50.0
SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 25,
    Severity.HIGH: 15,
    Severity.MEDIUM: 10,
    Severity.LOW: 5,
}
COMPLIANCE_GAP_WEIGHT = 0.2


def calculate_overall_risk_level(findings: list[AgentFinding]) -> Severity:
    """Roll finding severities up into one risk level for the run.

    CRITICAL if any finding is CRITICAL; HIGH if more than 3 are HIGH;
    MEDIUM if any is HIGH or there are more than 10 findings; else LOW.
    """
    critical_count = sum(1 for f in findings if f.severity is Severity.CRITICAL)
    high_count = sum(1 for f in findings if f.severity is Severity.HIGH)

    if critical_count > 0:
        return Severity.CRITICAL
    elif high_count > 3:
        return Severity.HIGH
    elif high_count > 0 or len(findings) > 10:
        return Severity.MEDIUM
    else:
        return Severity.LOW


def calculate_confidence(findings: list[AgentFinding]) -> float:
    """Mean finding confidence.

    A run with no findings reports exactly 1.0. This is a convention for
    "nothing to doubt", not a claim that the input is clean.
    """
    if not findings:
        return 1.0
    return sum(f.confidence for f in findings) / len(findings)


def calculate_supplier_risk_score(
    compliance_scores: pd.Series,
    findings: list[AgentFinding],
) -> float:
    """Score one supplier from its findings and contract compliance scores."""
    score = BASE_SUPPLIER_SCORE
    for finding in findings:
        score += SEVERITY_WEIGHTS[finding.severity]
    score += (100 - compliance_scores.mean()) * COMPLIANCE_GAP_WEIGHT
    return float(min(100.0, max(0.0, score)))


def _risk_factors(findings: list[AgentFinding]) -> list[str]:
    factors: dict[str, None] = {}
    for finding in findings:
        factors[finding.type.value] = None
        for breach in finding.regulatory_breach:
            factors[breach] = None
    return list(factors)


def _supplier_recommendations(risk_score: float) -> list[str]:
    if risk_score > 75:
        return [
            "Consider suspension from future tenders",
            "Require full audit of all contracts",
        ]
    elif risk_score > 50:
        return [
            "Enhanced monitoring required",
            "Additional documentation for future contracts",
        ]
    elif risk_score > 25:
        return ["Regular compliance checks"]
    return []


def build_supplier_profiles(
    df: pd.DataFrame,
    findings: list[AgentFinding],
) -> list[SupplierRiskProfile]:
    """Build one risk profile per supplier name in the batch.

    A finding belongs to a supplier when it references any of that
    supplier's procurement ids, so a duplicate group spanning two suppliers
    counts against both. Suppliers are keyed by exact name.

    Args:
        df: Procurement frame from records.records_to_frame().
        findings: All findings of the run.

    Returns:
        Profiles in order of each supplier's first appearance.
    """
    profiles = []
    for supplier_name, contracts in df.groupby("supplier_name", sort=False):
        contract_ids = set(contracts["id"])
        supplier_findings = [
            f for f in findings
            if any(pid in contract_ids for pid in f.affected_procurements)
        ]
        risk_score = calculate_supplier_risk_score(
            contracts["compliance_score"], supplier_findings
        )
        profiles.append(
            SupplierRiskProfile(
                supplier_id=str(contracts["supplier_id"].iloc[0]),
                supplier_name=supplier_name,
                risk_score=round(risk_score, 2),
                risk_factors=_risk_factors(supplier_findings),
                contract_history=ContractHistory(
                    total_contracts=len(contracts),
                    total_value=round(float(contracts["actual_value"].sum()), 2),
                    compliance_issues=len(supplier_findings),
                    performance_score=round(float(contracts["compliance_score"].mean()), 2),
                ),
                red_flags=[
                    f.title for f in supplier_findings
                    if f.severity in (Severity.HIGH, Severity.CRITICAL)
                ],
                recommendations=_supplier_recommendations(risk_score),
            )
        )

    high_risk = sum(1 for p in profiles if p.risk_score > 75)
    logger.info(
        "Built %d supplier risk profiles | %d above 75", len(profiles), high_risk
    )
    return profiles


def build_executive_summary(
    analysis: AgentAnalysis,
    profiles: list[SupplierRiskProfile],
    currency: str = "GHS",
    top_n: int = 5,
) -> dict[str, Any]:
    """Build an executive-level summary dict for reporting and logging.

    Financial exposure is summed across findings, so a contract caught by
    several rules is counted once per finding.

    Args:
        analysis: Completed analysis.
        profiles: Supplier profiles produced by the same run.
        currency: Display currency code from config.
        top_n: Number of highest-risk suppliers to list.

    Returns:
        Dict with keys:
            analysis_id, risk_level, confidence, headline_exposure,
            total_findings, total_recommendations, severity_breakdown,
            by_type, by_rule, top_suppliers, total_records_analysed, currency
    """
    findings_df = pd.DataFrame(
        [
            {
                "type": f.type.value,
                "rule": f.rule,
                "severity": f.severity.value,
                "financial_impact": f.financial_impact,
            }
            for f in analysis.findings
        ],
        columns=["type", "rule", "severity", "financial_impact"],
    )

    severity_counts = findings_df["severity"].value_counts()
    severity_breakdown = {
        sev.value: int(severity_counts.get(sev.value, 0))
        for sev in (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)
    }

    def _grouped(column: str) -> dict[str, dict[str, float]]:
        if findings_df.empty:
            return {}
        return (
            findings_df.groupby(column)
            .agg(count=("severity", "count"), exposure=("financial_impact", "sum"))
            .round(2)
            .to_dict(orient="index")
        )

    top_suppliers = {
        p.supplier_name: p.risk_score
        for p in sorted(profiles, key=lambda p: p.risk_score, reverse=True)[:top_n]
    }

    summary = {
        "analysis_id": analysis.id,
        "risk_level": analysis.risk_level.value,
        "confidence": round(analysis.confidence, 4),
        "headline_exposure": round(float(findings_df["financial_impact"].sum()), 2),
        "total_findings": analysis.issues_identified,
        "total_recommendations": len(analysis.recommendations),
        "severity_breakdown": severity_breakdown,
        "by_type": _grouped("type"),
        "by_rule": _grouped("rule"),
        "top_suppliers": top_suppliers,
        "total_records_analysed": analysis.processed_records,
        "currency": currency,
    }

    logger.info(
        "Executive summary built — %.2f %s flagged exposure | "
        "%d Critical | %d High findings",
        summary["headline_exposure"],
        currency,
        severity_breakdown["CRITICAL"],
        severity_breakdown["HIGH"],
    )
    return summary
