"""Read-side query API."""

from budget_engine.queries.summaries import OutstandingDebt, SummaryQueries

__all__ = ["OutstandingDebt", "SummaryQueries"]
