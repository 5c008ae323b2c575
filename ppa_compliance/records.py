"""
records.py — Procurement record loading and boundary validation.

Reads procurement data exported by the dashboard (JSON, camelCase keys) or
prepared by analysts (CSV, snake_case headers), validates it once, and
returns typed ProcurementRecord objects. Anything malformed raises
ProcurementDataError: a bad record is an upstream defect and must not be
silently excluded from the analysis.

The rule engine works on a DataFrame view of the records; records_to_frame()
builds that view.
"""

import json
import logging
import re
from dataclasses import fields
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

import pandas as pd

from ppa_compliance.exceptions import ProcurementDataError
from ppa_compliance.models import (
    ProcurementCategory,
    ProcurementMethod,
    ProcurementRecord,
)

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {
    "id", "entity_id", "entity_name", "supplier_id", "supplier_name",
    "procurement_method", "category", "estimated_value", "actual_value",
    "tender_closing_date", "contract_award_date",
}

REQUIRED_TEXT_COLUMNS = [
    "id", "entity_id", "entity_name", "supplier_id", "supplier_name",
]
REQUIRED_DATE_COLUMNS = ["tender_closing_date", "contract_award_date"]
OPTIONAL_DATE_COLUMNS = [
    "tender_publication_date", "contract_start_date", "contract_end_date",
]

REQUIRED_NUMERIC_COLUMNS = ["estimated_value", "actual_value"]
OPTIONAL_NUMERIC_COLUMNS = [
    "performance_guarantee", "advance_payment", "compliance_score",
    "evaluation_score", "local_content_percentage", "sustainability_score",
]
INTEGER_COLUMNS = ["bidders_count", "local_bidders_count"]

RECORD_FIELDS = [f.name for f in fields(ProcurementRecord)]


def _snake_case(name: str) -> str:
    """Convert a camelCase or spaced header to snake_case."""
    name = re.sub(r"[\s\-]+", "_", name.strip())
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name).lower()


def _parse_enum(series: pd.Series, enum_cls: type[Enum], column: str) -> pd.Series:
    """Normalise spelling and map a column onto an enum.

    The dashboard data spells one method as "DIRECT PROCUREMENT", so spaces
    and hyphens are folded into underscores before lookup.
    """
    normalised = (
        series.astype(str).str.strip().str.upper().str.replace(r"[\s\-]+", "_", regex=True)
    )
    valid = {member.value for member in enum_cls}
    bad = sorted(set(normalised[~normalised.isin(valid)]))
    if bad:
        raise ProcurementDataError(
            f"Unknown {column} value(s): {bad}. Expected one of {sorted(valid)}"
        )
    return normalised.map(enum_cls)


def _to_naive_datetime(series: pd.Series) -> pd.Series:
    return pd.to_datetime(series, errors="coerce", utc=True).dt.tz_convert(None)


def _to_float(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors="coerce").astype(float)


def _coerce_optional(
    df: pd.DataFrame,
    column: str,
    parse: Callable[[pd.Series], pd.Series],
    problem: str,
) -> pd.Series:
    """Parse an optional column, rejecting values that are present but invalid.

    Null and blank cells stay missing so the record default applies.

    Raises:
        ProcurementDataError: If a non-blank value cannot be parsed.
    """
    raw = df[column]
    present = raw.notna() & (raw.astype(str).str.strip() != "")
    parsed = parse(raw.where(present))
    bad_ids = df.loc[present & parsed.isna(), "id"].tolist()
    if bad_ids:
        raise ProcurementDataError(f"{problem} {column} for records: {bad_ids}")
    return parsed


def records_from_frame(df: pd.DataFrame) -> list[ProcurementRecord]:
    """Validate a raw procurement DataFrame and build typed records.

    Args:
        df: Raw frame with camelCase or snake_case headers.

    Returns:
        One ProcurementRecord per row, in input order.

    Raises:
        ProcurementDataError: If required columns are missing, an enum value
            is unknown, a required date/number cannot be parsed, or an
            optional one is present but malformed.
    """
    df = df.rename(columns=_snake_case)

    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ProcurementDataError(f"Missing required columns: {sorted(missing)}")

    df = df[[c for c in df.columns if c in RECORD_FIELDS]].copy()

    for col in REQUIRED_TEXT_COLUMNS:
        blank = df[col].isna() | (df[col].astype(str).str.strip() == "")
        if blank.any():
            raise ProcurementDataError(
                f"Blank {col} in {int(blank.sum())} record(s) "
                f"at rows {df.index[blank].tolist()}"
            )
    df[REQUIRED_TEXT_COLUMNS] = df[REQUIRED_TEXT_COLUMNS].astype(str)

    df["procurement_method"] = _parse_enum(
        df["procurement_method"], ProcurementMethod, "procurement_method"
    )
    df["category"] = _parse_enum(df["category"], ProcurementCategory, "category")

    for col in REQUIRED_DATE_COLUMNS:
        df[col] = _to_naive_datetime(df[col])
        bad_ids = df.loc[df[col].isna(), "id"].tolist()
        if bad_ids:
            raise ProcurementDataError(f"Unparseable {col} for records: {bad_ids}")

    for col in REQUIRED_NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)
        bad_ids = df.loc[df[col].isna(), "id"].tolist()
        if bad_ids:
            raise ProcurementDataError(f"Non-numeric {col} for records: {bad_ids}")

    for col in OPTIONAL_DATE_COLUMNS:
        if col in df.columns:
            df[col] = _coerce_optional(df, col, _to_naive_datetime, "Unparseable")

    for col in OPTIONAL_NUMERIC_COLUMNS:
        if col in df.columns:
            df[col] = _coerce_optional(df, col, _to_float, "Non-numeric")

    for col in INTEGER_COLUMNS:
        if col in df.columns:
            df[col] = _coerce_optional(df, col, _to_float, "Non-numeric").fillna(0).astype(int)

    records = []
    for row in df.to_dict(orient="records"):
        kwargs: dict[str, Any] = {}
        for key, value in row.items():
            if isinstance(value, pd.Timestamp):
                value = value.to_pydatetime()
            elif value is pd.NaT or (isinstance(value, float) and pd.isna(value)):
                # Missing optional value: fall back to the dataclass default
                continue
            elif key in INTEGER_COLUMNS:
                value = int(value)
            kwargs[key] = value
        records.append(ProcurementRecord(**kwargs))
    return records


def load_procurements(path: str) -> list[ProcurementRecord]:
    """Load procurement records from a CSV or JSON file.

    JSON may be a list of record objects or an object with a `procurements`
    list, matching the payload accepted by the dashboard's custom-analysis
    endpoint.

    Raises:
        FileNotFoundError: If the file does not exist.
        ProcurementDataError: If the file content fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Procurement data not found at {path}.")

    if path.suffix.lower() == ".json":
        with open(path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if isinstance(payload, dict):
            payload = payload.get("procurements", [])
        if not isinstance(payload, list):
            raise ProcurementDataError("JSON input must be a list of procurement records")
        df = pd.DataFrame(payload)
    else:
        df = pd.read_csv(path)

    if df.empty:
        logger.warning("No procurement records found in %s", path)
        return []

    records = records_from_frame(df)
    logger.info(
        "Loaded %d procurement records from %s (award dates %s to %s)",
        len(records),
        path,
        min(r.contract_award_date for r in records).date(),
        max(r.contract_award_date for r in records).date(),
    )
    return records


def records_to_frame(records: Iterable[ProcurementRecord]) -> pd.DataFrame:
    """Build the DataFrame view the rules operate on.

    Enum fields become their string values and date fields datetime64
    columns. A `_position` column keeps the input order for stable sorting.
    """
    rows = []
    for record in records:
        row = {}
        for name in RECORD_FIELDS:
            value = getattr(record, name)
            row[name] = value.value if isinstance(value, Enum) else value
        rows.append(row)

    df = pd.DataFrame(rows, columns=RECORD_FIELDS)
    for col in REQUIRED_DATE_COLUMNS + OPTIONAL_DATE_COLUMNS:
        df[col] = pd.to_datetime(df[col])
    for col in REQUIRED_NUMERIC_COLUMNS + OPTIONAL_NUMERIC_COLUMNS:
        df[col] = df[col].astype(float)
    df["_position"] = range(len(df))
    return df
