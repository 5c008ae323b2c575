"""
rules.py — Compliance, conflict and duplicate detection rules.

Each rule scans the full procurement frame independently and returns the
findings it raises; no rule suppresses another, so a single record may
appear in several findings.

Detection Rules:
    1. Budget Anomaly            — actual value > estimate × 1.1
    2. Local Content Shortfall   — local content < 40% (consultancy exempt)
    3. Inappropriate Method      — direct procurement above 50,000
    4. Award Delay               — award > 90 days after tender closing
    5. Supplier Concentration    — more than 3 contracts to one supplier
    6. Rapid Successive Awards   — same supplier awarded < 30 days apart
    7. Duplicate Procurement     — similar descriptions awarded within a year
    8. High-Value Oversight      — actual value > 100,000,000
    9. Single Bidder             — one bidder without sole-sourcing approval

Finding ids are derived from the rule name and the affected procurement
ids, so identical input always yields identical ids.
"""

import hashlib
import logging
from datetime import datetime
from typing import Iterable

import numpy as np
import pandas as pd

from ppa_compliance.models import AgentFinding, FindingType, Severity
from ppa_compliance.similarity import SimilarityDetector

logger = logging.getLogger(__name__)

ONE_DAY = pd.Timedelta(days=1)

RULE_PREFIXES = {
    "budget_anomaly":          "COMP",
    "local_content_shortfall": "LC",
    "inappropriate_method":    "PM",
    "award_delay":             "TL",
    "supplier_concentration":  "SC",
    "rapid_successive_awards": "RS",
    "duplicate_procurement":   "DP",
    "high_value_oversight":    "HV",
    "single_bidder":           "SB",
}

REGULATIONS = {
    "budget_anomaly":          "Public Procurement Act 2003, Section 42",
    "local_content_shortfall": "Local Content Policy, 2020",
    "inappropriate_method":    "Public Procurement Act 2003, Section 33",
    "award_delay":             "Public Procurement Act 2003, Section 40",
    "supplier_concentration":  "Public Procurement Act 2003, Section 64",
    "rapid_successive_awards": "Public Procurement Act 2003, Section 66",
    "duplicate_procurement":   "Public Procurement Act 2003, Section 28",
    "high_value_oversight":    "Public Procurement Act 2003, Section 47",
    "single_bidder":           "Public Procurement Act 2003, Section 35",
}


def finding_id(rule: str, procurement_ids: Iterable[str]) -> str:
    """Build a content-derived finding id, e.g. 'RS-3F2A9C01B7D4'."""
    payload = rule + "|" + "|".join(sorted(procurement_ids))
    digest = hashlib.sha1(payload.encode("utf-8")).hexdigest()[:12].upper()
    return f"{RULE_PREFIXES[rule]}-{digest}"


def _unique(values: Iterable[str]) -> list[str]:
    """Distinct values in first-seen order."""
    return list(dict.fromkeys(v for v in values if v))


def _make_finding(
    rule: str,
    finding_type: FindingType,
    severity: Severity,
    rows: pd.DataFrame,
    title: str,
    description: str,
    financial_impact: float,
    evidence: list[str],
    confidence: float,
    detected_at: datetime,
) -> AgentFinding:
    ids = rows["id"].tolist()
    return AgentFinding(
        id=finding_id(rule, ids),
        type=finding_type,
        rule=rule,
        severity=severity,
        title=title,
        description=description,
        affected_procurements=ids,
        entities=_unique(rows["entity_name"]),
        individuals=_unique(rows["approved_by"]),
        financial_impact=round(float(financial_impact), 2),
        regulatory_breach=[REGULATIONS[rule]],
        evidence=evidence,
        detected_date=detected_at,
        confidence=confidence,
    )


# ---------------------------------------------------------------------------
# Rule 1: Budget Anomaly
# ---------------------------------------------------------------------------

def classify_budget_severity(
    ratio: pd.Series,
    variance_ratio: float = 1.1,
    high_ratio: float = 1.3,
    critical_ratio: float = 1.5,
) -> pd.Series:
    """Map actual/estimate ratios to severity labels.

    >1.5 CRITICAL, >1.3 HIGH, >1.1 MEDIUM, otherwise LOW.
    """
    labels = np.select(
        [ratio > critical_ratio, ratio > high_ratio, ratio > variance_ratio],
        [Severity.CRITICAL.value, Severity.HIGH.value, Severity.MEDIUM.value],
        default=Severity.LOW.value,
    )
    return pd.Series(labels, index=ratio.index).map(Severity)


def detect_budget_anomalies(
    df: pd.DataFrame,
    detected_at: datetime,
    variance_ratio: float = 1.1,
    high_ratio: float = 1.3,
    critical_ratio: float = 1.5,
) -> list[AgentFinding]:
    """Flag contracts whose awarded value exceeds the estimate by > 10%.

    Severity scales with the overrun ratio; the financial impact is the
    overrun itself (actual − estimate).
    """
    logger.info(
        "Running Rule 1: Budget Anomaly (threshold=%.0f%% over estimate)",
        (variance_ratio - 1) * 100,
    )

    flagged = df[df["actual_value"] > df["estimated_value"] * variance_ratio].copy()
    flagged["_ratio"] = flagged["actual_value"] / flagged["estimated_value"]
    flagged["_severity"] = classify_budget_severity(
        flagged["_ratio"], variance_ratio, high_ratio, critical_ratio
    )

    findings = []
    for idx, row in flagged.iterrows():
        findings.append(
            _make_finding(
                "budget_anomaly",
                FindingType.BUDGET_ANOMALY,
                row["_severity"],
                flagged.loc[[idx]],
                title="Budget Exceeded",
                description=(
                    f"Contract value exceeded estimate by "
                    f"{(row['_ratio'] - 1) * 100:.1f}%"
                ),
                financial_impact=row["actual_value"] - row["estimated_value"],
                evidence=[
                    f"Original estimate: {row['estimated_value']:,.2f} {row['currency']}",
                    f"Final value: {row['actual_value']:,.2f} {row['currency']}",
                ],
                confidence=0.95,
                detected_at=detected_at,
            )
        )

    logger.info(
        "Rule 1 flagged %d budget overruns | total overrun %.2f",
        len(findings),
        sum(f.financial_impact for f in findings),
    )
    return findings


# ---------------------------------------------------------------------------
# Rule 2: Local Content Shortfall
# ---------------------------------------------------------------------------

def detect_local_content_shortfalls(
    df: pd.DataFrame,
    detected_at: datetime,
    min_pct: float = 40,
) -> list[AgentFinding]:
    """Flag non-consultancy contracts below the local content floor."""
    logger.info("Running Rule 2: Local Content Shortfall (minimum=%.0f%%)", min_pct)

    mask = (df["local_content_percentage"] < min_pct) & (df["category"] != "CONSULTANCY")
    flagged = df[mask]

    findings = [
        _make_finding(
            "local_content_shortfall",
            FindingType.LOCAL_CONTENT_SHORTFALL,
            Severity.MEDIUM,
            flagged.loc[[idx]],
            title="Local Content Requirement Not Met",
            description=(
                f"Local content of {row['local_content_percentage']:g}% is below "
                f"the {min_pct:g}% threshold"
            ),
            financial_impact=0.0,
            evidence=[f"Local content achieved: {row['local_content_percentage']:g}%"],
            confidence=0.90,
            detected_at=detected_at,
        )
        for idx, row in flagged.iterrows()
    ]

    logger.info("Rule 2 flagged %d local content shortfalls", len(findings))
    return findings


# ---------------------------------------------------------------------------
# Rule 3: Inappropriate Procurement Method
# ---------------------------------------------------------------------------

def detect_inappropriate_methods(
    df: pd.DataFrame,
    detected_at: datetime,
    direct_limit: float = 50_000,
) -> list[AgentFinding]:
    """Flag direct procurement used above the value ceiling."""
    logger.info(
        "Running Rule 3: Inappropriate Method (direct procurement limit=%.0f)",
        direct_limit,
    )

    mask = (df["procurement_method"] == "DIRECT_PROCUREMENT") & (
        df["estimated_value"] > direct_limit
    )
    flagged = df[mask]

    findings = [
        _make_finding(
            "inappropriate_method",
            FindingType.COMPLIANCE_VIOLATION,
            Severity.HIGH,
            flagged.loc[[idx]],
            title="Inappropriate Procurement Method",
            description=(
                "Direct procurement used for high-value contract without "
                "proper justification"
            ),
            financial_impact=row["actual_value"],
            evidence=[
                f"Method: {row['procurement_method']}",
                f"Value: {row['actual_value']:,.2f} {row['currency']}",
            ],
            confidence=0.88,
            detected_at=detected_at,
        )
        for idx, row in flagged.iterrows()
    ]

    logger.info("Rule 3 flagged %d direct procurements above limit", len(findings))
    return findings


# ---------------------------------------------------------------------------
# Rule 4: Award Delay
# ---------------------------------------------------------------------------

def detect_award_delays(
    df: pd.DataFrame,
    detected_at: datetime,
    max_days: float = 90,
) -> list[AgentFinding]:
    """Flag contracts awarded more than `max_days` after tender closing.

    The gap is measured in fractional days, so an award 90 days and one hour
    after closing is already late.
    """
    logger.info("Running Rule 4: Award Delay (limit=%d days)", max_days)

    days_to_award = (df["contract_award_date"] - df["tender_closing_date"]) / ONE_DAY
    flagged = df[days_to_award > max_days]

    findings = []
    for idx, row in flagged.iterrows():
        days = days_to_award[idx]
        findings.append(
            _make_finding(
                "award_delay",
                FindingType.TIMELINE_VIOLATION,
                Severity.MEDIUM,
                flagged.loc[[idx]],
                title="Delayed Contract Award",
                description=(
                    f"Contract awarded {days:.0f} days after tender closing, "
                    f"exceeding {max_days:g}-day limit"
                ),
                financial_impact=0.0,
                evidence=[f"Days to award: {days:.0f}"],
                confidence=0.92,
                detected_at=detected_at,
            )
        )

    logger.info(
        "Rule 4 flagged %d delayed awards | max delay %d days",
        len(findings),
        int(days_to_award[flagged.index].max()) if len(flagged) > 0 else 0,
    )
    return findings


# ---------------------------------------------------------------------------
# Rule 5: Supplier Concentration
# ---------------------------------------------------------------------------

def detect_supplier_concentration(
    df: pd.DataFrame,
    detected_at: datetime,
    max_contracts: int = 3,
) -> list[AgentFinding]:
    """Raise one finding per supplier holding more than `max_contracts`.

    Suppliers are grouped by exact name; no case or alias normalisation.
    """
    logger.info(
        "Running Rule 5: Supplier Concentration (max=%d contracts)", max_contracts
    )

    findings = []
    for supplier, contracts in df.groupby("supplier_name", sort=False):
        if len(contracts) <= max_contracts:
            continue
        total_value = contracts["actual_value"].sum()
        findings.append(
            _make_finding(
                "supplier_concentration",
                FindingType.CONFLICT_OF_INTEREST,
                Severity.MEDIUM,
                contracts,
                title="Supplier Concentration Risk",
                description=(
                    f"Supplier {supplier} awarded {len(contracts)} contracts, "
                    "potential dependency risk"
                ),
                financial_impact=total_value,
                evidence=[
                    f"Contract count: {len(contracts)}",
                    f"Total value: {total_value:,.2f}",
                ],
                confidence=0.85,
                detected_at=detected_at,
            )
        )

    logger.info("Rule 5 flagged %d concentrated suppliers", len(findings))
    return findings


# ---------------------------------------------------------------------------
# Rule 6: Rapid Successive Awards
# ---------------------------------------------------------------------------

def detect_rapid_successive_awards(
    df: pd.DataFrame,
    detected_at: datetime,
    min_gap_days: float = 30,
) -> list[AgentFinding]:
    """Flag each adjacent pair of awards to one supplier under `min_gap_days`.

    Within a supplier, contracts are ordered by award date (ties keep input
    order) and every consecutive pair is checked, so three awards within a
    fortnight yield two findings.
    """
    logger.info(
        "Running Rule 6: Rapid Successive Awards (min gap=%d days)", min_gap_days
    )

    findings = []
    for supplier, contracts in df.groupby("supplier_name", sort=False):
        if len(contracts) < 2:
            continue
        ordered = contracts.sort_values(
            ["contract_award_date", "_position"], kind="mergesort"
        )
        gaps = ordered["contract_award_date"].diff() / ONE_DAY
        for pos in range(1, len(ordered)):
            gap = gaps.iloc[pos]
            if gap >= min_gap_days:
                continue
            pair = ordered.iloc[pos - 1 : pos + 1]
            findings.append(
                _make_finding(
                    "rapid_successive_awards",
                    FindingType.CONFLICT_OF_INTEREST,
                    Severity.HIGH,
                    pair,
                    title="Rapid Successive Awards",
                    description=(
                        f"Supplier {supplier} awarded contracts {gap:.0f} days apart"
                    ),
                    financial_impact=pair["actual_value"].sum(),
                    evidence=[f"Days between awards: {gap:.0f}"],
                    confidence=0.90,
                    detected_at=detected_at,
                )
            )

    logger.info("Rule 6 flagged %d rapid successive award pairs", len(findings))
    return findings


# ---------------------------------------------------------------------------
# Rule 7: Duplicate Procurement
# ---------------------------------------------------------------------------

def detect_duplicate_procurements(
    df: pd.DataFrame,
    detected_at: datetime,
    similarity: SimilarityDetector,
    window_days: float = 365,
) -> list[AgentFinding]:
    """Raise one finding per group of similar procurements awarded close together.

    Records are grouped by `similarity.group_key(description)`. A group of
    two or more whose award dates span less than `window_days` is flagged
    as a whole.
    """
    logger.info(
        "Running Rule 7: Duplicate Procurement (window=%d days, detector=%s)",
        window_days,
        type(similarity).__name__,
    )

    keys = df["description"].fillna("").map(similarity.group_key)

    findings = []
    for _, group in df.groupby(keys, sort=False):
        if len(group) < 2:
            continue
        span_days = (
            group["contract_award_date"].max() - group["contract_award_date"].min()
        ) / ONE_DAY
        if span_days >= window_days:
            continue
        findings.append(
            _make_finding(
                "duplicate_procurement",
                FindingType.DUPLICATE_PROCUREMENT,
                Severity.MEDIUM,
                group,
                title="Potential Duplicate Procurement",
                description=(
                    f"{len(group)} similar procurements identified within "
                    f"{span_days:.0f} days"
                ),
                financial_impact=group["actual_value"].sum(),
                evidence=[
                    f"Similar procurements: {len(group)}",
                    f"Time span: {span_days:.0f} days",
                ],
                confidence=0.75,
                detected_at=detected_at,
            )
        )

    logger.info("Rule 7 flagged %d potential duplicate groups", len(findings))
    return findings


# ---------------------------------------------------------------------------
# Rule 8: High-Value Oversight
# ---------------------------------------------------------------------------

def detect_high_value_contracts(
    df: pd.DataFrame,
    detected_at: datetime,
    threshold: float = 100_000_000,
) -> list[AgentFinding]:
    """Flag contracts above a fixed value threshold for enhanced oversight.

    The threshold is compared to the raw amount regardless of currency.
    """
    logger.info("Running Rule 8: High-Value Oversight (threshold=%.0f)", threshold)

    flagged = df[df["actual_value"] > threshold]

    findings = [
        _make_finding(
            "high_value_oversight",
            FindingType.BUDGET_ANOMALY,
            Severity.HIGH,
            flagged.loc[[idx]],
            title="High-Value Procurement Risk",
            description="High-value contract requires enhanced oversight",
            financial_impact=row["actual_value"],
            evidence=[f"Contract value: {row['actual_value']:,.2f} {row['currency']}"],
            confidence=0.95,
            detected_at=detected_at,
        )
        for idx, row in flagged.iterrows()
    ]

    logger.info("Rule 8 flagged %d high-value contracts", len(findings))
    return findings


# ---------------------------------------------------------------------------
# Rule 9: Single Bidder
# ---------------------------------------------------------------------------

def detect_single_bidder(
    df: pd.DataFrame,
    detected_at: datetime,
) -> list[AgentFinding]:
    """Flag competitive procurements that drew exactly one bid."""
    logger.info("Running Rule 9: Single Bidder Without Sole Sourcing")

    mask = (df["bidders_count"] == 1) & (df["procurement_method"] != "SOLE_SOURCING")
    flagged = df[mask]

    findings = [
        _make_finding(
            "single_bidder",
            FindingType.COMPLIANCE_VIOLATION,
            Severity.HIGH,
            flagged.loc[[idx]],
            title="Single Bidder Without Sole Sourcing",
            description="Only one bidder received for non-sole sourcing procurement",
            financial_impact=row["actual_value"],
            evidence=[
                f"Bidders: {row['bidders_count']}",
                f"Method: {row['procurement_method']}",
            ],
            confidence=0.92,
            detected_at=detected_at,
        )
        for idx, row in flagged.iterrows()
    ]

    logger.info("Rule 9 flagged %d single-bidder procurements", len(findings))
    return findings
