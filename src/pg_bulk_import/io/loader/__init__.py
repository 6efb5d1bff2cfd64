"""
PostgreSQL COPY-based bulk loader.

This module provides streaming COPY loads, staging table management and
set-based UPDATE/UPSERT reconciliation on top of psycopg2 connections.
"""

from .copy_executor import BulkLoadExecutor
from .core import BulkImporter
from .pipe import BoundedPipe
from .row_encoder import RowEncoder
from .set_operations import SetOperationExecutor
from .staging import StagingHandle, StagingRelationManager

__all__ = [
    "BoundedPipe",
    "BulkImporter",
    "BulkLoadExecutor",
    "RowEncoder",
    "SetOperationExecutor",
    "StagingHandle",
    "StagingRelationManager",
]
