"""Metadata field models — field values and the schema they validate against."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

# Placeholder written in place of invalid or missing values by lenient
# validation.  Accepted by every field type.
NA_VALUE = "N/A"


class FieldType(str, Enum):
    """Value type of a metadata field."""

    TEXT = "text"
    TEXTBOX = "textbox"
    INT = "int"
    FLOAT = "float"
    DATE = "date"
    URL = "url"
    EMAIL = "email"


class DatasetFieldType(BaseModel):
    """Schema entry describing one metadata field."""

    model_config = ConfigDict(frozen=True)

    name: str
    title: str = ""
    field_type: FieldType = FieldType.TEXT
    required: bool = False
    allow_multiples: bool = False
    controlled_vocabulary: list[str] = []
    display_order: int = 0


class MetadataSchema(BaseModel):
    """Ordered collection of field types a dataset version is validated against."""

    model_config = ConfigDict(frozen=True)

    field_types: list[DatasetFieldType] = []

    def get(self, name: str) -> DatasetFieldType | None:
        for field_type in self.field_types:
            if field_type.name == name:
                return field_type
        return None

    @property
    def names(self) -> list[str]:
        return [ft.name for ft in self.ordered()]

    def ordered(self) -> list[DatasetFieldType]:
        return sorted(self.field_types, key=lambda ft: ft.display_order)


class DatasetField(BaseModel):
    """The values of one metadata field in one dataset version."""

    model_config = ConfigDict(validate_assignment=True)

    type_name: str
    values: list[str] = []

    @property
    def is_empty(self) -> bool:
        return not any(v.strip() for v in self.values)


DEFAULT_SCHEMA = MetadataSchema(
    field_types=[
        DatasetFieldType(name="title", title="Title", required=True, display_order=0),
        DatasetFieldType(
            name="author", title="Author", required=True, allow_multiples=True, display_order=1
        ),
        DatasetFieldType(
            name="datasetContactEmail",
            title="Contact E-mail",
            field_type=FieldType.EMAIL,
            display_order=2,
        ),
        DatasetFieldType(
            name="dsDescription",
            title="Description",
            field_type=FieldType.TEXTBOX,
            required=True,
            display_order=3,
        ),
        DatasetFieldType(
            name="subject",
            title="Subject",
            required=True,
            allow_multiples=True,
            controlled_vocabulary=[
                "Agricultural Sciences",
                "Arts and Humanities",
                "Astronomy and Astrophysics",
                "Business and Management",
                "Chemistry",
                "Computer and Information Science",
                "Earth and Environmental Sciences",
                "Engineering",
                "Law",
                "Mathematical Sciences",
                "Medicine, Health and Life Sciences",
                "Physics",
                "Social Sciences",
                "Other",
            ],
            display_order=4,
        ),
        DatasetFieldType(name="keyword", title="Keyword", allow_multiples=True, display_order=5),
        DatasetFieldType(
            name="productionDate", title="Production Date", field_type=FieldType.DATE, display_order=6
        ),
        DatasetFieldType(
            name="alternativeURL", title="Alternative URL", field_type=FieldType.URL, display_order=7
        ),
        DatasetFieldType(
            name="seriesNumber", title="Series Number", field_type=FieldType.INT, display_order=8
        ),
        DatasetFieldType(
            name="geographicCoverageArea",
            title="Coverage Area (km²)",
            field_type=FieldType.FLOAT,
            display_order=9,
        ),
    ]
)
