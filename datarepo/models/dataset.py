"""Dataset, version, and file entity models.

Entities form an arena addressed by stable identifiers:

- ``Dataset`` owns its ``DatasetVersion`` list, each version owns its
  ``FileMetadata`` list, and the dataset owns its ``DataFileCategory`` list.
  These are persisted together as one aggregate.
- ``DataFile`` is a separate entity shared across versions.  A
  ``FileMetadata`` refers to it by ``data_file_id`` and never owns it.
- Integer ids are allocated by the store; version and file-metadata ids
  are UUID hex strings created with the object.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from datarepo.errors import InvalidOperationError
from datarepo.models.fields import DatasetField
from datarepo.models.identifiers import GlobalId


class VersionState(str, Enum):
    """Lifecycle state of a dataset version."""

    DRAFT = "DRAFT"
    RELEASED = "RELEASED"
    DEACCESSIONED = "DEACCESSIONED"
    ARCHIVED = "ARCHIVED"


class IdentifiableObject(BaseModel):
    """Base for entities that can carry a persistent identifier."""

    model_config = ConfigDict(validate_assignment=True)

    id: int | None = None
    protocol: str | None = None
    authority: str | None = None
    identifier: str | None = None
    # Set once the registry has confirmed the identifier.  After that the
    # identifier is never regenerated.
    global_id_create_time: datetime | None = None
    identifier_registered: bool = False

    @property
    def global_id(self) -> GlobalId | None:
        if not (self.protocol and self.authority and self.identifier):
            return None
        return GlobalId(
            protocol=self.protocol, authority=self.authority, identifier=self.identifier
        )

    @property
    def global_id_string(self) -> str:
        gid = self.global_id
        return gid.as_string() if gid else ""


class DataFile(IdentifiableObject):
    """Content-bearing file entity.

    A file with a ``publication_date`` has been released and is never
    hard-deleted; only its metadata link to a draft can be removed.
    """

    owner_id: int | None = None
    storage_identifier: str = ""
    content_type: str = "application/octet-stream"
    filesize: int = 0
    checksum: str = ""
    unf: str | None = None
    # Size of the uploaded original for ingested tabular files.
    original_file_size: int | None = None
    create_date: datetime | None = None
    modification_time: datetime | None = None
    creator_id: int | None = None
    publication_date: datetime | None = None

    @property
    def is_released(self) -> bool:
        return self.publication_date is not None

    @property
    def is_tabular(self) -> bool:
        return self.content_type == "text/tab-separated-values"


class FileMetadata(BaseModel):
    """Version-specific attributes of a file."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    data_file_id: int
    label: str
    description: str = ""
    directory_label: str = ""
    category_names: list[str] = []


class DataFileCategory(BaseModel):
    """A named file category and the file metadata records tagged with it."""

    model_config = ConfigDict(validate_assignment=True)

    name: str
    file_metadata_ids: list[str] = []


class DatasetVersion(BaseModel):
    """One version of a dataset: field values plus the files valid in it."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    version_state: VersionState = VersionState.DRAFT
    version_number: int | None = None
    minor_version_number: int | None = None
    fields: list[DatasetField] = []
    file_metadatas: list[FileMetadata] = []
    unf: str | None = None
    create_time: datetime | None = None
    last_update_time: datetime | None = None
    release_time: datetime | None = None
    validation_problems: list[str] = []

    @property
    def is_draft(self) -> bool:
        return self.version_state == VersionState.DRAFT

    @property
    def is_released(self) -> bool:
        return self.version_state == VersionState.RELEASED

    @property
    def friendly_number(self) -> str:
        if self.is_draft or self.version_number is None:
            return "DRAFT"
        return f"{self.version_number}.{self.minor_version_number or 0}"

    def get_field(self, type_name: str) -> DatasetField | None:
        for field in self.fields:
            if field.type_name == type_name:
                return field
        return None

    def file_metadata_for(self, data_file_id: int) -> FileMetadata | None:
        for fmd in self.file_metadatas:
            if fmd.data_file_id == data_file_id:
                return fmd
        return None

    def ensure_editable(self) -> None:
        if not self.is_draft:
            raise InvalidOperationError(
                f"Version {self.friendly_number} is {self.version_state.value} and cannot be edited"
            )


class Dataset(IdentifiableObject):
    """A versioned dataset.

    Invariant: at most one DRAFT version, always at the head of
    ``versions`` (newest first).  Released versions are never edited in
    place; ``get_or_create_edit_version`` clones the latest one instead.
    """

    owner_id: int | None = None
    creator_id: int | None = None
    thumbnail_file_id: int | None = None
    use_generic_thumbnail: bool = False
    create_date: datetime | None = None
    modification_time: datetime | None = None
    publication_date: datetime | None = None
    last_export_time: datetime | None = None
    index_time: datetime | None = None
    harvested: bool = False
    file_ids: list[int] = []
    versions: list[DatasetVersion] = []
    categories: list[DataFileCategory] = []

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    @property
    def latest_version(self) -> DatasetVersion | None:
        return self.versions[0] if self.versions else None

    @property
    def edit_version(self) -> DatasetVersion | None:
        """The open draft, or None when every version is released."""
        latest = self.latest_version
        return latest if latest is not None and latest.is_draft else None

    @property
    def released_version(self) -> DatasetVersion | None:
        for version in self.versions:
            if version.is_released:
                return version
        return None

    def get_or_create_edit_version(self) -> DatasetVersion:
        """Return the draft, cloning the latest version into a new one if needed."""
        latest = self.latest_version
        if latest is not None and latest.is_draft:
            return latest

        draft = DatasetVersion()
        if latest is not None:
            draft.fields = [f.model_copy(deep=True) for f in latest.fields]
            id_map: dict[str, str] = {}
            copies: list[FileMetadata] = []
            for fmd in latest.file_metadatas:
                copy = fmd.model_copy(update={"id": uuid.uuid4().hex}, deep=True)
                id_map[fmd.id] = copy.id
                copies.append(copy)
            draft.file_metadatas = copies
            draft.unf = latest.unf
            for category in self.categories:
                category.file_metadata_ids = category.file_metadata_ids + [
                    id_map[fmd_id] for fmd_id in category.file_metadata_ids if fmd_id in id_map
                ]
        self.versions = [draft] + self.versions
        return draft

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_released(self) -> bool:
        return self.publication_date is not None

    @property
    def is_deaccessioned(self) -> bool:
        states = {v.version_state for v in self.versions}
        return VersionState.RELEASED not in states and VersionState.DEACCESSIONED in states

    @property
    def display_name(self) -> str:
        latest = self.latest_version
        if latest is None:
            return ""
        title = latest.get_field("title")
        return title.values[0] if title and title.values else ""

    # ------------------------------------------------------------------
    # Files and categories
    # ------------------------------------------------------------------

    def add_file(self, data_file: DataFile, label: str = "", description: str = "") -> FileMetadata:
        """Attach a persisted DataFile to the draft version."""
        if data_file.id is None:
            raise InvalidOperationError("DataFile must be persisted before it is attached")
        draft = self.get_or_create_edit_version()
        fmd = FileMetadata(
            data_file_id=data_file.id,
            label=label or data_file.storage_identifier or f"file-{data_file.id}",
            description=description,
        )
        draft.file_metadatas = draft.file_metadatas + [fmd]
        if data_file.id not in self.file_ids:
            self.file_ids = self.file_ids + [data_file.id]
        data_file.owner_id = self.id
        return fmd

    def get_category(self, name: str) -> DataFileCategory | None:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    def categorize(self, fmd: FileMetadata, name: str) -> DataFileCategory:
        category = self.get_category(name)
        if category is None:
            category = DataFileCategory(name=name)
            self.categories = self.categories + [category]
        if fmd.id not in category.file_metadata_ids:
            category.file_metadata_ids = category.file_metadata_ids + [fmd.id]
        if name not in fmd.category_names:
            fmd.category_names = fmd.category_names + [name]
        return category
