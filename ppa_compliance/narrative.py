"""
narrative.py — Prompt construction for prose compliance reports.

The dashboard asks an external text-generation service to turn an analysis
into a formal report for the Public Procurement Authority. This module only
builds the prompt and hands it to a caller-supplied completion function;
no model client is bundled.
"""

import logging
from typing import Callable

from ppa_compliance.models import AgentAnalysis
from ppa_compliance.store import AnalysisStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert procurement compliance analyst generating official "
    "reports for the Public Procurement Authority of Ghana."
)

# complete(system_prompt, user_prompt) -> report text
CompletionFn = Callable[[str, str], str]


def build_report_prompt(analysis: AgentAnalysis) -> str:
    findings = "\n".join(
        f"- {f.title}: {f.description} (Severity: {f.severity.value})"
        for f in analysis.findings
    )
    recommendations = "\n".join(
        f"- {r.title}: {r.description}" for r in analysis.recommendations
    )
    return (
        "Generate a comprehensive procurement compliance report based on the "
        "following analysis:\n\n"
        f"Analysis ID: {analysis.id}\n"
        f"Date: {analysis.timestamp.isoformat()}\n"
        f"Risk Level: {analysis.risk_level.value}\n"
        f"Processed Records: {analysis.processed_records}\n"
        f"Issues Identified: {analysis.issues_identified}\n\n"
        f"Key Findings:\n{findings or '- None'}\n\n"
        f"Recommendations:\n{recommendations or '- None'}\n\n"
        "Please format this as a professional report with executive summary, "
        "detailed findings, and actionable recommendations."
    )


def generate_narrative(
    analysis_id: str,
    store: AnalysisStore,
    complete: CompletionFn,
) -> str:
    """Look up a stored analysis and request a prose report for it.

    Raises:
        AnalysisNotFoundError: If the id is not in the store.
        ValueError: If the completion function returns no text.
    """
    analysis = store.get_analysis(analysis_id)
    prompt = build_report_prompt(analysis)
    logger.info(
        "Requesting narrative report for %s (%d findings)",
        analysis_id,
        analysis.issues_identified,
    )
    report = complete(SYSTEM_PROMPT, prompt)
    if not report or not report.strip():
        raise ValueError(f"Empty narrative returned for analysis {analysis_id}")
    return report
