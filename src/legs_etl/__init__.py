"""Legs ETL: incremental builder of the partitioned flight leg dataset."""

__version__ = "0.1.0"

from legs_etl.__main__ import main

__all__ = ["main", "__version__"]
