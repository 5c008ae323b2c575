"""
models.py — Typed records and analysis results.

Procurement records are validated once at the boundary (see records.py) and
reach the rules as frozen dataclasses. Result objects serialise to
JSON-ready dicts via to_dict().
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class ProcurementMethod(str, Enum):
    OPEN_TENDER = "OPEN_TENDER"
    RESTRICTED_TENDER = "RESTRICTED_TENDER"
    DIRECT_PROCUREMENT = "DIRECT_PROCUREMENT"
    SOLE_SOURCING = "SOLE_SOURCING"
    TWO_STAGE_TENDER = "TWO_STAGE_TENDER"


class ProcurementCategory(str, Enum):
    GOODS = "GOODS"
    WORKS = "WORKS"
    SERVICES = "SERVICES"
    CONSULTANCY = "CONSULTANCY"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        """Integer rank for sorting (1=LOW, 4=CRITICAL)."""
        return SEVERITY_ORDER[self]


SEVERITY_ORDER = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class FindingType(str, Enum):
    COMPLIANCE_VIOLATION = "COMPLIANCE_VIOLATION"
    CONFLICT_OF_INTEREST = "CONFLICT_OF_INTEREST"
    DUPLICATE_PROCUREMENT = "DUPLICATE_PROCUREMENT"
    BUDGET_ANOMALY = "BUDGET_ANOMALY"
    TIMELINE_VIOLATION = "TIMELINE_VIOLATION"
    LOCAL_CONTENT_SHORTFALL = "LOCAL_CONTENT_SHORTFALL"


class RecommendationPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class RecommendationCategory(str, Enum):
    IMMEDIATE_ACTION = "IMMEDIATE_ACTION"
    INVESTIGATION = "INVESTIGATION"
    POLICY_CHANGE = "POLICY_CHANGE"
    SYSTEM_IMPROVEMENT = "SYSTEM_IMPROVEMENT"


def _jsonable(value: Any) -> Any:
    """Recursively convert enums and datetimes into JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class ProcurementRecord:
    """A single awarded procurement, immutable for the duration of a run.

    Dates are expected to satisfy
    publication <= closing <= award <= start <= end; the engine does not
    check the ordering.
    """

    id: str
    entity_id: str
    entity_name: str
    supplier_id: str
    supplier_name: str
    procurement_method: ProcurementMethod
    category: ProcurementCategory
    estimated_value: float
    actual_value: float
    tender_closing_date: datetime
    contract_award_date: datetime
    description: str = ""
    procurement_title: str = ""
    supplier_country: str = "Ghana"
    tender_number: str = ""
    contract_number: str = ""
    currency: str = "GHS"
    performance_guarantee: float = 0.0
    advance_payment: float = 0.0
    bidders_count: int = 0
    local_bidders_count: int = 0
    tender_publication_date: datetime | None = None
    contract_start_date: datetime | None = None
    contract_end_date: datetime | None = None
    compliance_score: float = 100.0
    evaluation_score: float = 0.0
    local_content_percentage: float = 100.0
    sustainability_score: float = 0.0
    approved_by: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class AgentFinding:
    """One detected issue produced by a single rule evaluation."""

    id: str
    type: FindingType
    rule: str
    severity: Severity
    title: str
    description: str
    affected_procurements: list[str]
    entities: list[str]
    individuals: list[str]
    financial_impact: float
    regulatory_breach: list[str]
    evidence: list[str]
    detected_date: datetime
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class AgentRecommendation:
    id: str
    priority: RecommendationPriority
    category: RecommendationCategory
    title: str
    description: str
    action_steps: list[str]
    responsible_party: str
    timeline: str
    expected_outcome: str
    related_findings: list[str]

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class ContractHistory:
    total_contracts: int
    total_value: float
    compliance_issues: int
    performance_score: float


@dataclass
class SupplierRiskProfile:
    """Per-supplier aggregate of every finding touching its contracts.

    risk_score is a weighted accumulator clamped to [0, 100]; it is not a
    calibrated probability.
    """

    supplier_id: str
    supplier_name: str
    risk_score: float
    risk_factors: list[str]
    contract_history: ContractHistory
    red_flags: list[str]
    recommendations: list[str]

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class AgentAnalysis:
    """Result of one analysis run over a full batch of records."""

    id: str
    timestamp: datetime
    findings: list[AgentFinding]
    recommendations: list[AgentRecommendation]
    risk_level: Severity
    confidence: float
    processed_records: int
    issues_identified: int
    analysis_type: str = "COMPLIANCE_CHECK"
    scope: str = "FULL_PROCUREMENT_DATASET"

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))
