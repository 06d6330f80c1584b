"""Metadata field validation for dataset versions.

Two modes:

- strict: any violation raises ``FieldValidationError`` carrying every
  field-level violation found.
- lenient: used for harvested and spreadsheet intake.  Invalid or missing
  values are replaced with ``NA_VALUE``, the problems are recorded on the
  version, and the version is revalidated.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict

from datarepo.errors import FieldValidationError
from datarepo.models.dataset import DatasetVersion
from datarepo.models.fields import (
    NA_VALUE,
    DatasetField,
    DatasetFieldType,
    FieldType,
    MetadataSchema,
)

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-']+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")
_DATE_RE = re.compile(r"^\d{4}(-\d{2}(-\d{2})?)?$")
_URL_SCHEMES = frozenset({"http", "https", "ftp"})


class FieldViolation(BaseModel):
    """One field-level validation failure."""

    model_config = ConfigDict(frozen=True)

    type_name: str
    value: str | None = None
    message: str


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def init_dataset_fields(version: DatasetVersion, schema: MetadataSchema) -> None:
    """Add an empty field for every schema entry the version lacks, in display order.

    Fields unknown to the schema are kept after the schema fields so that
    validation can report them.
    """
    by_name = {field.type_name: field for field in version.fields}
    ordered: list[DatasetField] = []
    for field_type in schema.ordered():
        ordered.append(by_name.pop(field_type.name, None) or DatasetField(type_name=field_type.name))
    ordered.extend(by_name.values())
    version.fields = ordered


def tidy_up_fields(version: DatasetVersion) -> None:
    """Drop blank values and fields left with no values."""
    tidied: list[DatasetField] = []
    for field in version.fields:
        values = [v.strip() for v in field.values if v.strip()]
        if values:
            field.values = values
            tidied.append(field)
    version.fields = tidied


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_value(field_type: DatasetFieldType, value: str) -> str | None:
    """Return an error message for one value, or None if it is valid."""
    if value == NA_VALUE:
        return None

    kind = field_type.field_type
    if kind == FieldType.INT:
        try:
            int(value)
        except ValueError:
            return f"{value!r} is not a valid integer"
    elif kind == FieldType.FLOAT:
        try:
            float(value)
        except ValueError:
            return f"{value!r} is not a valid number"
    elif kind == FieldType.DATE:
        if not _is_valid_date(value):
            return f"{value!r} is not a valid date (YYYY, YYYY-MM or YYYY-MM-DD)"
    elif kind == FieldType.URL:
        parsed = urlparse(value)
        if parsed.scheme not in _URL_SCHEMES or not parsed.netloc:
            return f"{value!r} is not a valid URL"
    elif kind == FieldType.EMAIL:
        if not _EMAIL_RE.match(value):
            return f"{value!r} is not a valid email address"

    if field_type.controlled_vocabulary and value not in field_type.controlled_vocabulary:
        return f"{value!r} is not an allowed value"
    return None


def _is_valid_date(value: str) -> bool:
    if not _DATE_RE.match(value):
        return False
    parts = [int(p) for p in value.split("-")] + [1, 1]
    try:
        date(parts[0], parts[1], parts[2])
    except ValueError:
        return False
    return True


def validate_version(version: DatasetVersion, schema: MetadataSchema) -> list[FieldViolation]:
    """Validate every field of the version against the schema.

    Returns all violations found; an empty list means the version is valid.
    """
    violations: list[FieldViolation] = []
    present = {field.type_name for field in version.fields if not field.is_empty}

    for field_type in schema.ordered():
        if field_type.required and field_type.name not in present:
            violations.append(
                FieldViolation(type_name=field_type.name, message=f"{field_type.title or field_type.name} is required")
            )

    for field in version.fields:
        field_type = schema.get(field.type_name)
        if field_type is None:
            if not field.is_empty:
                violations.append(
                    FieldViolation(type_name=field.type_name, message="Unknown metadata field")
                )
            continue
        values = [v for v in field.values if v.strip()]
        if len(values) > 1 and not field_type.allow_multiples:
            violations.append(
                FieldViolation(
                    type_name=field.type_name,
                    message=f"Only one value allowed, got {len(values)}",
                )
            )
        for value in values:
            message = _check_value(field_type, value.strip())
            if message is not None:
                violations.append(
                    FieldViolation(type_name=field.type_name, value=value, message=message)
                )
    return violations


def validate_or_die(
    version: DatasetVersion,
    schema: MetadataSchema,
    lenient: bool = False,
) -> list[FieldViolation]:
    """Validate the version, raising in strict mode.

    In lenient mode every offending value (and every missing required
    field) is replaced with ``NA_VALUE`` and the problems are recorded in
    ``version.validation_problems``.  The repaired version is then
    revalidated, so whatever remains is raised regardless of mode.

    Returns the violations that were repaired (always empty in strict mode).

    Raises
    ------
    FieldValidationError
        If violations remain.
    """
    violations = validate_version(version, schema)
    if not violations:
        return []
    if not lenient:
        raise FieldValidationError(violations)

    for violation in violations:
        _repair(version, schema, violation)
    version.validation_problems = version.validation_problems + [
        f"{v.type_name}: {v.message}" for v in violations
    ]
    logger.info("Lenient validation repaired %d problem(s)", len(violations))

    remaining = validate_version(version, schema)
    if remaining:
        raise FieldValidationError(remaining)
    return violations


def _repair(version: DatasetVersion, schema: MetadataSchema, violation: FieldViolation) -> None:
    field = version.get_field(violation.type_name)
    field_type = schema.get(violation.type_name)

    if field_type is None:
        # Unknown fields cannot be repaired in place; drop them.
        version.fields = [f for f in version.fields if f.type_name != violation.type_name]
        return
    if field is None:
        field = DatasetField(type_name=violation.type_name)
        version.fields = version.fields + [field]

    if violation.value is not None:
        field.values = [NA_VALUE if v == violation.value else v for v in field.values]
    elif field.is_empty:
        field.values = [NA_VALUE]
    else:
        # Too many values for a single-valued field: keep the first.
        field.values = [next(v for v in field.values if v.strip())]
