from .engine import generate_insights, select_insights

__all__ = ["generate_insights", "select_insights"]
