"""Election results tally, offline reconciliation and declaration service."""

__version__ = "0.1.0"
