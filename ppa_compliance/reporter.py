"""
reporter.py — Compliance Workbook and JSON export.

Produces a multi-sheet Excel workbook for the PPA monitoring unit, with
severity-coloured finding rows, frozen headers and auto-fitted columns, and
a plain JSON dump of the analysis for the dashboard.

Sheets:
    1. Summary          — KPI tiles, findings by type, highest-risk suppliers
    2. Findings         — One row per finding, coloured by severity
    3. Recommendations  — One row per recommendation with action steps
    4. Supplier Risk    — Supplier profiles sorted by risk score
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from ppa_compliance.config import load_config
from ppa_compliance.models import AgentAnalysis, SupplierRiskProfile

logger = logging.getLogger(__name__)

COLOURS = {
    "navy":         "1F4E79",
    "dark_red":     "C00000",
    "dark_green":   "375623",
    "gold":         "BF8F00",
    "light_grey":   "F2F2F2",
    "white":        "FFFFFF",
    "critical_row": "FFCCCC",
    "high_row":     "FFE5CC",
    "medium_row":   "FFFFE0",
    "low_row":      "E2EFDA",
}

SEVERITY_ROW_COLOURS = {
    "CRITICAL": COLOURS["critical_row"],
    "HIGH":     COLOURS["high_row"],
    "MEDIUM":   COLOURS["medium_row"],
    "LOW":      COLOURS["low_row"],
}

TYPE_LABELS = {
    "COMPLIANCE_VIOLATION":    "Compliance Violation",
    "CONFLICT_OF_INTEREST":    "Conflict of Interest",
    "DUPLICATE_PROCUREMENT":   "Duplicate Procurement",
    "BUDGET_ANOMALY":          "Budget Anomaly",
    "TIMELINE_VIOLATION":      "Timeline Violation",
    "LOCAL_CONTENT_SHORTFALL": "Local Content Shortfall",
}

THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def _fill(hex_colour: str) -> PatternFill:
    return PatternFill(fill_type="solid", fgColor=hex_colour)


def _header_font() -> Font:
    return Font(name="Calibri", bold=True, color=COLOURS["white"], size=11)


def _title_font(size: int = 14) -> Font:
    return Font(name="Calibri", bold=True, color=COLOURS["navy"], size=size)


def _auto_fit_columns(ws, min_width: int = 10, max_width: int = 60) -> None:
    """Set each column width to its longest cell value, within bounds."""
    for col in ws.columns:
        longest = max((len(str(c.value)) for c in col if c.value is not None), default=0)
        ws.column_dimensions[get_column_letter(col[0].column)].width = min(
            max(longest + 4, min_width), max_width
        )


def _write_header_row(ws, row: int, headers: list[str], colour: str, start_col: int = 1) -> None:
    for col_i, header in enumerate(headers, start=start_col):
        cell = ws.cell(row=row, column=col_i, value=header)
        cell.fill = _fill(colour)
        cell.font = _header_font()
        cell.alignment = Alignment(horizontal="center", wrap_text=True)
        cell.border = THIN_BORDER


def _write_kpi_tile(ws, row: int, col: int, label: str, value: str, colour: str) -> None:
    """Write a two-cell KPI tile (label above, value below)."""
    label_cell = ws.cell(row=row, column=col, value=label)
    label_cell.fill = _fill(colour)
    label_cell.font = _header_font()
    label_cell.alignment = Alignment(horizontal="center", vertical="center")
    label_cell.border = THIN_BORDER

    value_cell = ws.cell(row=row + 1, column=col, value=value)
    value_cell.font = Font(name="Calibri", bold=True, size=16, color=colour)
    value_cell.alignment = Alignment(horizontal="center", vertical="center")
    value_cell.fill = _fill(COLOURS["light_grey"])
    value_cell.border = THIN_BORDER


def _build_summary_sheet(ws, summary: dict[str, Any], run_date: str) -> None:
    """Populate the Summary sheet with KPI tiles and breakdown tables.

    Args:
        ws: openpyxl Worksheet (Summary tab).
        summary: Executive summary from scoring.build_executive_summary().
        run_date: ISO date string for the report header.
    """
    ws.sheet_properties.tabColor = COLOURS["navy"]

    ws.merge_cells("A1:H1")
    title = ws["A1"]
    title.value = "PPA PROCUREMENT COMPLIANCE ANALYSIS — EXECUTIVE SUMMARY"
    title.font = Font(name="Calibri", bold=True, size=16, color=COLOURS["white"])
    title.fill = _fill(COLOURS["navy"])
    title.alignment = Alignment(horizontal="center", vertical="center")
    ws.row_dimensions[1].height = 30

    ws.merge_cells("A2:H2")
    sub = ws["A2"]
    sub.value = (
        f"Report Date: {run_date}  |  Analysis: {summary['analysis_id']}  |  "
        f"Overall Risk: {summary['risk_level']}  |  "
        f"Confidence: {summary['confidence']:.2f}"
    )
    sub.font = Font(name="Calibri", italic=True, size=10, color=COLOURS["navy"])
    sub.alignment = Alignment(horizontal="center", vertical="center")

    sev = summary["severity_breakdown"]
    currency = summary["currency"]
    kpi_tiles = [
        ("FLAGGED EXPOSURE", f"{currency} {summary['headline_exposure']:,.2f}", COLOURS["dark_red"]),
        ("RECORDS",          f"{summary['total_records_analysed']:,}",           COLOURS["navy"]),
        ("FINDINGS",         f"{summary['total_findings']:,}",                   COLOURS["navy"]),
        ("CRITICAL",         str(sev.get("CRITICAL", 0)),                        "CC0000"),
        ("HIGH",             str(sev.get("HIGH", 0)),                            "C65911"),
        ("MEDIUM",           str(sev.get("MEDIUM", 0)),                          COLOURS["gold"]),
        ("LOW",              str(sev.get("LOW", 0)),                             COLOURS["dark_green"]),
    ]
    for i, (label, value, colour) in enumerate(kpi_tiles, start=1):
        _write_kpi_tile(ws, row=4, col=i, label=label, value=value, colour=colour)
    ws.row_dimensions[5].height = 30

    ws.cell(row=7, column=1, value="FINDINGS BY TYPE").font = _title_font(12)
    _write_header_row(ws, 8, ["Finding Type", "Findings", f"Exposure ({currency})"], COLOURS["navy"])
    for row_i, (finding_type, data) in enumerate(summary["by_type"].items(), start=9):
        values = [TYPE_LABELS.get(finding_type, finding_type), data["count"], data["exposure"]]
        for col_i, val in enumerate(values, start=1):
            cell = ws.cell(row=row_i, column=col_i, value=val)
            cell.fill = _fill(COLOURS["light_grey"])
            cell.border = THIN_BORDER
            if col_i == 3:
                cell.number_format = "#,##0.00"

    ws.cell(row=7, column=6, value="HIGHEST-RISK SUPPLIERS").font = _title_font(12)
    _write_header_row(ws, 8, ["Supplier", "Risk Score"], COLOURS["dark_red"], start_col=6)
    for row_i, (supplier, score) in enumerate(summary["top_suppliers"].items(), start=9):
        ws.cell(row=row_i, column=6, value=supplier).border = THIN_BORDER
        score_cell = ws.cell(row=row_i, column=7, value=score)
        score_cell.number_format = "0.0"
        score_cell.border = THIN_BORDER

    _auto_fit_columns(ws)


def _build_findings_sheet(ws, analysis: AgentAnalysis) -> None:
    """Write every finding with severity-coded row colours."""
    ws.sheet_properties.tabColor = COLOURS["dark_red"]

    headers = [
        "Finding ID", "Type", "Rule", "Severity", "Title", "Description",
        "Procurements", "Entities", "Approved By", "Financial Impact",
        "Regulatory Breach", "Confidence",
    ]
    _write_header_row(ws, 1, headers, COLOURS["dark_red"])
    ws.freeze_panes = "A2"

    ordered = sorted(
        analysis.findings,
        key=lambda f: (-f.severity.rank, -f.financial_impact),
    )
    for row_i, finding in enumerate(ordered, start=2):
        values = [
            finding.id,
            TYPE_LABELS[finding.type.value],
            finding.rule,
            finding.severity.value,
            finding.title,
            finding.description,
            ", ".join(finding.affected_procurements),
            ", ".join(finding.entities),
            ", ".join(finding.individuals),
            finding.financial_impact,
            "; ".join(finding.regulatory_breach),
            finding.confidence,
        ]
        fill = _fill(SEVERITY_ROW_COLOURS[finding.severity.value])
        for col_i, val in enumerate(values, start=1):
            cell = ws.cell(row=row_i, column=col_i, value=val)
            cell.fill = fill
            cell.border = THIN_BORDER
            cell.alignment = Alignment(vertical="center")
        ws.cell(row=row_i, column=10).number_format = "#,##0.00"
        ws.cell(row=row_i, column=12).number_format = "0.00"

    ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"
    _auto_fit_columns(ws)


def _build_recommendations_sheet(ws, analysis: AgentAnalysis) -> None:
    ws.sheet_properties.tabColor = COLOURS["gold"]

    headers = [
        "Recommendation ID", "Priority", "Category", "Title", "Action Steps",
        "Responsible Party", "Timeline", "Expected Outcome", "Related Findings",
    ]
    _write_header_row(ws, 1, headers, COLOURS["gold"])
    ws.freeze_panes = "A2"

    for row_i, rec in enumerate(analysis.recommendations, start=2):
        values = [
            rec.id,
            rec.priority.value,
            rec.category.value,
            rec.title,
            "\n".join(rec.action_steps),
            rec.responsible_party,
            rec.timeline,
            rec.expected_outcome,
            len(rec.related_findings),
        ]
        for col_i, val in enumerate(values, start=1):
            cell = ws.cell(row=row_i, column=col_i, value=val)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(vertical="top", wrap_text=(col_i == 5))

    _auto_fit_columns(ws)


def _build_supplier_sheet(ws, profiles: list[SupplierRiskProfile]) -> None:
    ws.sheet_properties.tabColor = COLOURS["dark_green"]

    headers = [
        "Supplier", "Supplier ID", "Risk Score", "Contracts", "Total Value",
        "Issues", "Performance Score", "Red Flags", "Recommendations",
    ]
    _write_header_row(ws, 1, headers, COLOURS["dark_green"])
    ws.freeze_panes = "A2"

    for row_i, profile in enumerate(
        sorted(profiles, key=lambda p: p.risk_score, reverse=True), start=2
    ):
        history = profile.contract_history
        values = [
            profile.supplier_name,
            profile.supplier_id,
            profile.risk_score,
            history.total_contracts,
            history.total_value,
            history.compliance_issues,
            history.performance_score,
            "; ".join(dict.fromkeys(profile.red_flags)),
            "; ".join(profile.recommendations),
        ]
        for col_i, val in enumerate(values, start=1):
            cell = ws.cell(row=row_i, column=col_i, value=val)
            cell.border = THIN_BORDER
        if profile.risk_score > 75:
            for col_i in range(1, len(headers) + 1):
                ws.cell(row=row_i, column=col_i).fill = _fill(COLOURS["critical_row"])
        ws.cell(row=row_i, column=5).number_format = "#,##0.00"

    _auto_fit_columns(ws)


def generate_report(
    analysis: AgentAnalysis,
    profiles: list[SupplierRiskProfile],
    summary: dict[str, Any],
    config_path: str = "config.yaml",
) -> Path:
    """Generate the compliance workbook and write it to the output directory.

    Args:
        analysis: Completed analysis.
        profiles: Supplier profiles from the same run.
        summary: Executive summary from scoring.build_executive_summary().
        config_path: Path to configuration YAML.

    Returns:
        Path to the generated .xlsx file.

    Raises:
        OSError: If the output directory cannot be created.
    """
    cfg = load_config(config_path)

    run_date = datetime.today().strftime("%Y-%m-%d")
    output_dir = Path(cfg["paths"]["output_dir"])
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / cfg["paths"]["report_filename"].format(date=run_date)

    wb = Workbook()
    wb.remove(wb.active)

    _build_summary_sheet(wb.create_sheet("Summary"), summary, run_date)
    _build_findings_sheet(wb.create_sheet("Findings"), analysis)
    logger.info("Built Findings sheet (%d rows)", len(analysis.findings))
    _build_recommendations_sheet(wb.create_sheet("Recommendations"), analysis)
    _build_supplier_sheet(wb.create_sheet("Supplier Risk"), profiles)
    logger.info("Built Supplier Risk sheet (%d suppliers)", len(profiles))

    wb.save(output_path)
    logger.info("Excel report saved to %s", output_path)
    return output_path


def export_analysis_json(
    analysis: AgentAnalysis,
    profiles: list[SupplierRiskProfile],
    output_path: str | Path,
) -> Path:
    """Write the analysis and supplier profiles as indented JSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "analysis": analysis.to_dict(),
        "supplier_risk_profiles": [p.to_dict() for p in profiles],
    }
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
    logger.info("Analysis JSON written to %s", output_path)
    return output_path
