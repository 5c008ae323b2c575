"""
recommendations.py — Recommendation synthesis.

One recommendation per distinct finding type present in a run, drawn from a
fixed template table. Only four types have templates: COMPLIANCE_VIOLATION
and TIMELINE_VIOLATION findings produce no recommendation. That gap is
deliberate until the oversight unit decides what those templates should say.
"""

import hashlib
import logging
from typing import Any

from ppa_compliance.models import (
    AgentFinding,
    AgentRecommendation,
    FindingType,
    RecommendationCategory,
    RecommendationPriority,
)

logger = logging.getLogger(__name__)

RECOMMENDATION_TEMPLATES: dict[FindingType, dict[str, Any]] = {
    FindingType.BUDGET_ANOMALY: {
        "code": "BUD",
        "priority": RecommendationPriority.HIGH,
        "category": RecommendationCategory.POLICY_CHANGE,
        "title": "Strengthen Budget Estimation Process",
        "description": "Implement more rigorous budget estimation and approval processes",
        "action_steps": [
            "Require detailed cost breakdown for estimates > 1M GHS",
            "Implement independent review for high-value estimates",
            "Establish variance threshold of 5% for automatic review",
        ],
        "responsible_party": "PPA Board + Entity Procurement Units",
        "timeline": "30 days",
        "expected_outcome": "Reduce budget overruns by 50%",
    },
    FindingType.LOCAL_CONTENT_SHORTFALL: {
        "code": "LC",
        "priority": RecommendationPriority.MEDIUM,
        "category": RecommendationCategory.POLICY_CHANGE,
        "title": "Enhance Local Content Monitoring",
        "description": "Strengthen local content requirements and monitoring",
        "action_steps": [
            "Implement pre-qualification local content assessment",
            "Require local content implementation plans",
            "Establish quarterly local content reporting",
        ],
        "responsible_party": "PPA Monitoring Unit",
        "timeline": "60 days",
        "expected_outcome": "Achieve 70% average local content",
    },
    FindingType.CONFLICT_OF_INTEREST: {
        "code": "CF",
        "priority": RecommendationPriority.URGENT,
        "category": RecommendationCategory.IMMEDIATE_ACTION,
        "title": "Investigate Supplier Relationships",
        "description": "Conduct thorough investigation of potential conflicts",
        "action_steps": [
            "Audit all contracts with identified suppliers",
            "Review approval processes and authorities",
            "Implement supplier rotation policy",
        ],
        "responsible_party": "PPA Investigation Unit + Auditor General",
        "timeline": "14 days",
        "expected_outcome": "Identify and resolve all conflicts",
    },
    FindingType.DUPLICATE_PROCUREMENT: {
        "code": "DP",
        "priority": RecommendationPriority.MEDIUM,
        "category": RecommendationCategory.SYSTEM_IMPROVEMENT,
        "title": "Implement Procurement Consolidation",
        "description": "System to identify and consolidate similar procurements",
        "action_steps": [
            "Deploy AI-powered duplicate detection",
            "Establish framework for procurement consolidation",
            "Create centralized procurement planning",
        ],
        "responsible_party": "PPA IT Unit + Procurement Planning",
        "timeline": "90 days",
        "expected_outcome": "Reduce duplicate procurements by 80%",
    },
}


def _recommendation_id(code: str, finding_ids: list[str]) -> str:
    digest = hashlib.sha1("|".join(sorted(finding_ids)).encode("utf-8")).hexdigest()
    return f"REC-{code}-{digest[:8].upper()}"


def synthesize_recommendations(
    findings: list[AgentFinding],
) -> list[AgentRecommendation]:
    """Group findings by type and emit one templated recommendation per group.

    Groups are visited in order of first appearance. Types without a
    template are skipped and logged at DEBUG.
    """
    by_type: dict[FindingType, list[AgentFinding]] = {}
    for finding in findings:
        by_type.setdefault(finding.type, []).append(finding)

    recommendations = []
    for finding_type, group in by_type.items():
        template = RECOMMENDATION_TEMPLATES.get(finding_type)
        if template is None:
            logger.debug(
                "No recommendation template for %s (%d findings)",
                finding_type.value,
                len(group),
            )
            continue
        related = [f.id for f in group]
        recommendations.append(
            AgentRecommendation(
                id=_recommendation_id(template["code"], related),
                priority=template["priority"],
                category=template["category"],
                title=template["title"],
                description=template["description"],
                action_steps=list(template["action_steps"]),
                responsible_party=template["responsible_party"],
                timeline=template["timeline"],
                expected_outcome=template["expected_outcome"],
                related_findings=related,
            )
        )

    logger.info(
        "Synthesised %d recommendations from %d finding types",
        len(recommendations),
        len(by_type),
    )
    return recommendations
