"""Field placement contract: geometry checks at preparation time and
shape validation of a recipient's submission before it is applied.

Everything here is pure; nothing touches the database.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional

from django.conf import settings

from apps.domain.models import SignatureField

CHECKBOX_VALUES = ('true', 'false')
GEOMETRY_TOLERANCE = 1e-9

ERROR_REQUIRED = 'required'
ERROR_UNKNOWN_FIELD = 'unknown_field'
ERROR_INVALID_CHECKBOX = 'invalid_checkbox'
ERROR_INVALID_DATE = 'invalid_date'
ERROR_INVALID_IMAGE = 'invalid_image'
ERROR_IMAGE_TOO_LARGE = 'image_too_large'
ERROR_TOO_LONG = 'too_long'


@dataclass
class Submission:
    field_values: Dict[str, str] = field(default_factory=dict)
    signature_image: Optional[str] = None


@dataclass
class ValidationResult:
    field_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.field_errors

    @property
    def invalid_field_ids(self):
        return sorted(self.field_errors.keys())


def has_value(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ''


def normalize_field_id(raw) -> str:
    try:
        return str(uuid.UUID(str(raw)))
    except (ValueError, TypeError, AttributeError):
        return str(raw)


def normalize_field_values(raw_values: Optional[Dict]) -> Dict[str, str]:
    if not raw_values:
        return {}
    return {
        normalize_field_id(key): value
        for key, value in raw_values.items()
        if key is not None and value is not None
    }


def is_image_data_url(value: str) -> bool:
    trimmed = value.strip()
    if not trimmed.startswith('data:image/') or ';base64,' not in trimmed:
        return False
    return trimmed.split(';base64,', 1)[1] != ''


def validate(fields: Iterable[SignatureField], submission: Submission) -> ValidationResult:
    """Checks a submission against the recipient's fields.

    Required values are never invented here: callers that want a default
    (a pre-filled date, a captured signature) must put it in the submission.
    """
    max_text_length = settings.SIGNING_MAX_TEXT_LENGTH
    max_signature_length = settings.SIGNING_MAX_SIGNATURE_LENGTH
    values = submission.field_values
    errors: Dict[str, str] = {}

    fields = list(fields)
    known_ids = {str(f.id) for f in fields}
    for field_id in values:
        if field_id not in known_ids:
            errors[field_id] = ERROR_UNKNOWN_FIELD

    for f in fields:
        field_id = str(f.id)
        value = values.get(field_id)

        if f.field_type == SignatureField.TYPE_CHECKBOX:
            if value is not None and value not in CHECKBOX_VALUES:
                errors[field_id] = ERROR_INVALID_CHECKBOX
            continue

        if not has_value(value):
            errors[field_id] = ERROR_REQUIRED
            continue

        if f.field_type in SignatureField.IMAGE_TYPES:
            if not is_image_data_url(value):
                errors[field_id] = ERROR_INVALID_IMAGE
            elif len(value) > max_signature_length:
                errors[field_id] = ERROR_IMAGE_TOO_LARGE
            continue

        if len(value) > max_text_length:
            errors[field_id] = ERROR_TOO_LONG
            continue

        if f.field_type == SignatureField.TYPE_DATE:
            try:
                datetime.strptime(value.strip(), '%Y-%m-%d')
            except ValueError:
                errors[field_id] = ERROR_INVALID_DATE

    return ValidationResult(errors)


def validate_geometry(page, coord_x, coord_y, coord_w, coord_h) -> Dict[str, str]:
    errors = {}
    if page is None or page < 1:
        errors['page'] = 'Page must be 1 or greater.'
    for name, value in (('coord_x', coord_x), ('coord_y', coord_y), ('coord_w', coord_w), ('coord_h', coord_h)):
        if value is None or not 0.0 <= value <= 1.0:
            errors[name] = 'Coordinates are page fractions between 0 and 1.'
    if errors:
        return errors
    if coord_w <= 0:
        errors['coord_w'] = 'Width must be greater than 0.'
    if coord_h <= 0:
        errors['coord_h'] = 'Height must be greater than 0.'
    if coord_x + coord_w > 1.0 + GEOMETRY_TOLERANCE:
        errors['coord_w'] = 'Field extends past the right edge of the page.'
    if coord_y + coord_h > 1.0 + GEOMETRY_TOLERANCE:
        errors['coord_h'] = 'Field extends past the bottom edge of the page.'
    return errors
