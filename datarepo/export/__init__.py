"""Metadata export and search-index synchronization, run in the background."""

from datarepo.export.indexing import IndexingService
from datarepo.export.json_exporter import Exporter, JsonExporter, canonical_json_bytes
from datarepo.export.service import ExportService, ExportSummary, needs_export

__all__ = [
    "ExportService",
    "ExportSummary",
    "Exporter",
    "IndexingService",
    "JsonExporter",
    "canonical_json_bytes",
    "needs_export",
]
