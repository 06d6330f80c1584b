"""Tests for the JSON exporter, ExportService and IndexingService."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from datarepo.core.background import BackgroundRunner
from datarepo.errors import EntityNotFoundError, InvalidOperationError
from datarepo.export.indexing import IndexingService
from datarepo.export.json_exporter import Exporter, JsonExporter, canonical_json_bytes
from datarepo.export.service import ExportService, needs_export
from datarepo.models.dataset import Dataset, DatasetVersion, VersionState
from datarepo.models.fields import DatasetField

RELEASED_AT = datetime(2024, 4, 2, 10, 0, tzinfo=timezone.utc)


def _released_version(**overrides) -> DatasetVersion:
    defaults = {
        "version_state": VersionState.RELEASED,
        "version_number": 1,
        "minor_version_number": 0,
        "release_time": RELEASED_AT,
        "fields": [
            DatasetField(type_name="title", values=["Tide Gauges"]),
            DatasetField(type_name="author", values=["Okafor, Ada"]),
        ],
    }
    defaults.update(overrides)
    return DatasetVersion(**defaults)


@pytest.fixture
def make_published(store):
    def _factory(**overrides) -> Dataset:
        defaults = {
            "protocol": "doi",
            "authority": "10.5072",
            "publication_date": RELEASED_AT,
            "versions": [_released_version()],
        }
        defaults.update(overrides)
        with store.transaction() as tx:
            dataset = tx.merge(Dataset(**defaults))
            if dataset.identifier is None:
                dataset.identifier = f"FK2/EXP{dataset.id:03d}"
        return store.find(Dataset, dataset.id)

    return _factory


class FailingExporter:
    def export_all_formats(self, dataset: Dataset) -> list[Path]:
        raise OSError("disk full")


class TestNeedsExport:
    def test_never_exported(self):
        dataset = Dataset(publication_date=RELEASED_AT, versions=[_released_version()])
        assert needs_export(dataset)

    def test_exported_after_release(self):
        dataset = Dataset(
            publication_date=RELEASED_AT,
            last_export_time=RELEASED_AT + timedelta(hours=1),
            versions=[_released_version()],
        )
        assert not needs_export(dataset)
        assert needs_export(dataset, force=True)

    def test_exported_before_latest_release(self):
        dataset = Dataset(
            publication_date=RELEASED_AT,
            last_export_time=RELEASED_AT - timedelta(days=1),
            versions=[_released_version()],
        )
        assert needs_export(dataset)

    def test_unpublished_and_deaccessioned_skipped(self):
        assert not needs_export(Dataset(versions=[DatasetVersion()]), force=True)
        gone = Dataset(
            publication_date=RELEASED_AT,
            versions=[_released_version(version_state=VersionState.DEACCESSIONED)],
        )
        assert not needs_export(gone, force=True)


class TestJsonExporter:
    def test_canonical_bytes(self):
        assert canonical_json_bytes({"b": 1, "a": "é"}) == b'{"a":"\\u00e9","b":1}'

    def test_writes_every_format(self, tmp_path, make_published):
        dataset = make_published()
        exporter = JsonExporter(tmp_path / "exports")
        written = exporter.export_all_formats(dataset)

        assert [p.name for p in written] == [
            "export_citation_json.cached",
            "export_native_json.cached",
        ]
        assert all(p.parent == tmp_path / "exports" / str(dataset.id) for p in written)
        citation = json.loads(written[0].read_bytes())
        assert citation["title"] == "Tide Gauges"
        assert citation["authors"] == ["Okafor, Ada"]
        assert citation["year"] == 2024
        assert citation["version"] == "1.0"
        native = json.loads(written[1].read_bytes())
        assert native["persistentId"] == dataset.global_id_string

    def test_exports_released_version_not_draft(self, tmp_path, make_published):
        draft = DatasetVersion(fields=[DatasetField(type_name="title", values=["Unreleased"])])
        dataset = make_published(versions=[draft, _released_version()])
        written = JsonExporter(tmp_path).export_all_formats(dataset)
        assert json.loads(written[0].read_bytes())["title"] == "Tide Gauges"

    def test_reexport_is_byte_identical(self, tmp_path, make_published):
        dataset = make_published()
        exporter = JsonExporter(tmp_path)
        first = [p.read_bytes() for p in exporter.export_all_formats(dataset)]
        second = [p.read_bytes() for p in exporter.export_all_formats(dataset)]
        assert first == second

    def test_unreleased_dataset_rejected(self, tmp_path):
        with pytest.raises(InvalidOperationError):
            JsonExporter(tmp_path).export_all_formats(Dataset(id=1, versions=[DatasetVersion()]))

    def test_protocol_conformance(self, tmp_path):
        assert isinstance(JsonExporter(tmp_path), Exporter)


class TestExportService:
    @pytest.fixture
    def service(self, store, config) -> ExportService:
        return ExportService(store, JsonExporter(config.export_dir), config)

    def test_export_dataset_stamps_time(self, service, store, make_published):
        dataset = make_published()
        written = service.export_dataset(dataset.id)
        assert len(written) == 2
        assert store.find(Dataset, dataset.id).last_export_time is not None

    def test_export_unknown_dataset(self, service):
        with pytest.raises(EntityNotFoundError):
            service.export_dataset(404)

    def test_export_all_counts_and_logs(self, service, config, make_dataset, make_published):
        exported = make_published()
        make_published(harvested=True)
        make_dataset()  # draft only, never published

        summary = service.export_all()
        assert summary.processed == 1
        assert summary.succeeded == 1
        assert summary.failed == 0
        assert summary.aborted is False
        assert summary.log_file.parent == config.log_dir
        assert summary.log_file.name.startswith("export_")
        log_text = summary.log_file.read_text()
        assert "Starting an export all job" in log_text
        assert f"Success exporting dataset: Tide Gauges {exported.global_id_string}" in log_text
        assert "Finished export-all job." in log_text

    def test_second_run_skips_fresh_exports(self, service, make_published):
        make_published()
        service.export_all()
        assert service.export_all().processed == 0
        forced = service.reexport_all()
        assert forced.processed == 1
        assert forced.forced is True

    def test_failures_are_counted_not_raised(self, store, config, make_published):
        make_published()
        make_published()
        summary = ExportService(store, FailingExporter(), config).export_all()
        assert summary.processed == 2
        assert summary.failed == 2
        assert "Error exporting dataset" in summary.log_file.read_text()

    def test_unwritable_log_aborts_job(self, store, config, make_published):
        make_published()
        blocker = config.log_dir
        blocker.parent.mkdir(parents=True, exist_ok=True)
        blocker.write_text("not a directory")

        summary = ExportService(store, JsonExporter(config.export_dir), config).export_all()
        assert summary.aborted is True
        assert summary.processed == 0

    def test_async_variants(self, store, config, make_published):
        make_published()
        with BackgroundRunner(max_workers=1) as runner:
            service = ExportService(store, JsonExporter(config.export_dir), config, runner=runner)
            first = service.export_all_async().result(timeout=10)
            forced = service.reexport_all_async().result(timeout=10)
        assert first.succeeded == 1
        assert forced.succeeded == 1

    def test_async_failure_resolves_to_none(self, store, config):
        with BackgroundRunner(max_workers=1) as runner:
            service = ExportService(store, JsonExporter(config.export_dir), config, runner=runner)
            assert service.export_dataset_async(404).result(timeout=10) is None


class TestIndexingService:
    def test_index_dataset_stamps_time(self, store, config, index, make_dataset):
        dataset = make_dataset()
        service = IndexingService(store, index, config)
        service.index_dataset(dataset.id, is_minor_update=True)
        assert index.calls == [(dataset.id, True)]
        assert store.find(Dataset, dataset.id).index_time is not None

    def test_reindex_unindexed(self, store, config, index, make_dataset):
        first = make_dataset()
        second = make_dataset()
        service = IndexingService(store, index, config)
        assert service.reindex_unindexed() == 2
        assert sorted(call[0] for call in index.calls) == [first.id, second.id]
        assert service.reindex_unindexed() == 0

    def test_reindex_continues_past_failures(self, store, config, make_dataset, caplog):
        broken = make_dataset()
        healthy = make_dataset()

        class FlakyIndex:
            def index_dataset(self, dataset: Dataset, is_minor_update: bool) -> None:
                if dataset.id == broken.id:
                    raise ConnectionError("index node down")

        service = IndexingService(store, FlakyIndex(), config)
        assert service.reindex_unindexed() == 1
        assert store.find(Dataset, healthy.id).index_time is not None
        assert store.find(Dataset, broken.id).index_time is None
        assert f"Indexing dataset {broken.id} failed" in caplog.text

    def test_async_variant(self, store, config, index, make_dataset):
        dataset = make_dataset()
        with BackgroundRunner(max_workers=1) as runner:
            service = IndexingService(store, index, config, runner=runner)
            assert service.index_dataset_async(dataset.id).result(timeout=10).id == dataset.id
            assert service.reindex_unindexed_async().result(timeout=10) == 0
