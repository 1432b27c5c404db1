"""Visit ingestion, identity reconciliation and fraud assessment pipeline."""

__version__ = "1.0.0"
