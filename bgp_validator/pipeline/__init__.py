"""
Ingestion pipeline: stream consumer and result file writer.
"""

from .ingest import IngestionLoop, IngestionStats
from .sink import ResultWriter

__all__ = ["IngestionLoop", "IngestionStats", "ResultWriter"]
