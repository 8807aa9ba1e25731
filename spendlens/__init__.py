"""SpendLens: import bank exports, categorize them and summarize spending."""

__version__ = "0.1.0"
