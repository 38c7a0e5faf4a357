"""StateGraph CLI: index, search and analyze state implication projects."""

__version__ = "0.1.0"
