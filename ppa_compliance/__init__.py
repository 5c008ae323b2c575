"""
ppa-compliance-agent — Source package.

Modules:
    models           — Typed procurement records and analysis results
    records          — CSV/JSON loading and boundary validation
    similarity       — Pluggable grouping for duplicate detection
    rules            — The nine compliance/conflict/duplicate rules
    recommendations  — One templated recommendation per finding type
    scoring          — Risk level, confidence, supplier risk profiles
    store            — Analysis history and supplier profile storage
    engine           — ComplianceAnalysisEngine orchestrator
    reporter         — Excel workbook and JSON export
    narrative        — Prompt building for prose reports
"""
