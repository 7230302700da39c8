"""Exception classes for the aggregation and reporting core."""


class ExpenseInsightsError(Exception):
    """Base exception for expense insights."""
    pass


class ValidationError(ExpenseInsightsError):
    """Unsupported granularity or malformed request parameters."""
    pass


class RenderError(ExpenseInsightsError):
    """The report document could not be written."""
    pass


class RenderCancelled(RenderError):
    """The report was abandoned before the document was finalized."""
    pass
