"""Custom exceptions for the compliance agent."""


class ProcurementDataError(ValueError):
    """Raised when procurement input fails boundary validation."""

    pass


class AnalysisNotFoundError(LookupError):
    """Raised when an analysis id is not present in the store."""

    pass
