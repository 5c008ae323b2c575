"""
store.py — Analysis history and supplier profile storage.

The engine does not own global state; it writes each completed analysis and
its supplier profiles into a store passed in by the caller. The in-memory
store below keeps everything for the life of the process.
"""

import logging
import threading
from abc import ABC, abstractmethod

from ppa_compliance.exceptions import AnalysisNotFoundError
from ppa_compliance.models import AgentAnalysis, SupplierRiskProfile

logger = logging.getLogger(__name__)


class AnalysisStore(ABC):
    """Persistence seam for analysis history and supplier risk profiles."""

    @abstractmethod
    def next_sequence(self) -> int:
        """Return the sequence number for the next analysis id."""

    @abstractmethod
    def append_analysis(self, analysis: AgentAnalysis) -> None:
        ...

    @abstractmethod
    def upsert_profiles(self, profiles: list[SupplierRiskProfile]) -> None:
        """Replace any stored profile with the same supplier name."""

    @abstractmethod
    def history(self) -> list[AgentAnalysis]:
        ...

    @abstractmethod
    def get_analysis(self, analysis_id: str) -> AgentAnalysis:
        ...

    @abstractmethod
    def get_profile(self, supplier_name: str) -> SupplierRiskProfile | None:
        ...

    @abstractmethod
    def all_profiles(self) -> list[SupplierRiskProfile]:
        ...


class InMemoryAnalysisStore(AnalysisStore):
    """Unbounded process-local store, lost on restart.

    Profiles are keyed by exact supplier name and overwritten, not merged,
    on each run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._history: list[AgentAnalysis] = []
        self._profiles: dict[str, SupplierRiskProfile] = {}
        self._sequence = 0

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def append_analysis(self, analysis: AgentAnalysis) -> None:
        with self._lock:
            self._history.append(analysis)
        logger.debug("Stored analysis %s (%d in history)", analysis.id, len(self._history))

    def upsert_profiles(self, profiles: list[SupplierRiskProfile]) -> None:
        with self._lock:
            for profile in profiles:
                self._profiles[profile.supplier_name] = profile

    def history(self) -> list[AgentAnalysis]:
        with self._lock:
            return list(self._history)

    def get_analysis(self, analysis_id: str) -> AgentAnalysis:
        with self._lock:
            for analysis in self._history:
                if analysis.id == analysis_id:
                    return analysis
        raise AnalysisNotFoundError(f"Analysis not found: {analysis_id}")

    def get_profile(self, supplier_name: str) -> SupplierRiskProfile | None:
        with self._lock:
            return self._profiles.get(supplier_name)

    def all_profiles(self) -> list[SupplierRiskProfile]:
        with self._lock:
            return list(self._profiles.values())
