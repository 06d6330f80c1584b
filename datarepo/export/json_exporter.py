"""JSON metadata exporter — writes cached metadata exports to local files.

Layout: {export_dir}/{dataset_id}/export_{format}.cached

Each export is serialized to canonical JSON (sorted keys, compact
separators, ASCII) so that re-exporting unchanged metadata produces
byte-identical files.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

from datarepo.errors import InvalidOperationError
from datarepo.models.dataset import Dataset, DatasetVersion

logger = logging.getLogger(__name__)


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


@runtime_checkable
class Exporter(Protocol):
    """Protocol every metadata exporter must implement."""

    def export_all_formats(self, dataset: Dataset) -> list[Path]:
        """Export the dataset's released version in every format; return the files written."""
        ...


def _fields_dict(version: DatasetVersion) -> dict[str, list[str]]:
    return {field.type_name: list(field.values) for field in version.fields}


def _native_json(dataset: Dataset, version: DatasetVersion) -> dict[str, Any]:
    return {
        "id": dataset.id,
        "persistentId": dataset.global_id_string,
        "publicationDate": dataset.publication_date.isoformat() if dataset.publication_date else None,
        "version": {
            "id": version.id,
            "versionNumber": version.version_number,
            "minorVersionNumber": version.minor_version_number,
            "versionState": version.version_state.value,
            "releaseTime": version.release_time.isoformat() if version.release_time else None,
            "UNF": version.unf,
            "fields": _fields_dict(version),
            "files": [
                {
                    "dataFileId": fmd.data_file_id,
                    "label": fmd.label,
                    "description": fmd.description,
                    "directoryLabel": fmd.directory_label,
                    "categories": list(fmd.category_names),
                }
                for fmd in version.file_metadatas
            ],
        },
    }


def _citation_json(dataset: Dataset, version: DatasetVersion) -> dict[str, Any]:
    fields = _fields_dict(version)
    year = version.release_time.year if version.release_time else None
    return {
        "title": (fields.get("title") or [""])[0],
        "authors": fields.get("author", []),
        "year": year,
        "identifier": dataset.global_id_string,
        "version": version.friendly_number,
        "UNF": version.unf,
    }


FORMATS: dict[str, Callable[[Dataset, DatasetVersion], dict[str, Any]]] = {
    "native_json": _native_json,
    "citation_json": _citation_json,
}


class JsonExporter:
    """Writes every export format of a dataset's released version.

    Parameters
    ----------
    export_dir:
        Root directory for cached exports.
    """

    def __init__(self, export_dir: Path | str) -> None:
        self._base = Path(export_dir)

    @property
    def formats(self) -> list[str]:
        return sorted(FORMATS)

    def export_all_formats(self, dataset: Dataset) -> list[Path]:
        """Write every format.

        Raises
        ------
        InvalidOperationError
            If the dataset has no released version to export.
        """
        version = dataset.released_version
        if version is None:
            raise InvalidOperationError(f"Dataset {dataset.id} has no released version")

        target_dir = self._base / str(dataset.id)
        target_dir.mkdir(parents=True, exist_ok=True)

        written: list[Path] = []
        for name in self.formats:
            target = target_dir / f"export_{name}.cached"
            target.write_bytes(canonical_json_bytes(FORMATS[name](dataset, version)))
            written.append(target)

        logger.debug("JsonExporter: wrote %d format(s) for dataset %s", len(written), dataset.id)
        return written
