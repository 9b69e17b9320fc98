"""Bill Watch - Congress.gov bill ingestion and status tracking."""

__version__ = "0.1.0"
