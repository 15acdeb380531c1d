"""
finance_engine
~~~~~~~~~~~~~~

Pattern analysis, budget variance, forecasting and notification engine for a
personal-finance ledger. The analyzers are pure functions of a snapshot and an
immutable ``EngineConfig``, so they can be reused by the FastAPI routes, the
scheduled notification pass, or scripts.
"""

from .analytics.forecast import BudgetForecaster
from .utils.analyzer import PatternAnalyzer

__all__ = ["BudgetForecaster", "PatternAnalyzer"]
