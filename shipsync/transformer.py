import hashlib
import json
import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Optional, Union

from django.utils.text import slugify

logger = logging.getLogger(__name__)

# Upstream view objects and the resolutions kept for each variant.
IMAGE_VIEWS = ('angledView', 'sideView', 'topView', 'frontView')

NUMERIC_FIELDS = (
    'cargo', 'length', 'beam', 'height', 'mass', 'scmSpeed',
    'hydrogenFuelTankSize', 'quantumFuelTankSize', 'pledgePrice', 'price',
)

TEXT_FIELDS = ('description', 'storeUrl', 'scIdentifier')

CONSUMED_KEYS = {
    'id', 'slug', 'name', 'manufacturer', 'classification', 'classificationLabel',
    'focus', 'size', 'productionStatus', 'crew', 'images', 'storeImage', 'fleetchartImage',
    *IMAGE_VIEWS, *NUMERIC_FIELDS, *TEXT_FIELDS,
}


@dataclass(frozen=True)
class Manufacturer:
    name: str = ''
    code: str = ''
    slug: str = ''


@dataclass(frozen=True)
class CatalogRecord:
    external_id: str
    slug: str
    name: str
    manufacturer: Manufacturer
    classification: str = ''
    classification_label: str = ''
    focus: str = ''
    size: str = ''
    production_status: str = ''
    attributes: dict = field(default_factory=dict)
    images: dict = field(default_factory=dict)
    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RecordValidationError:
    external_id: Optional[str]
    reason: str


ParsedRecord = Union[CatalogRecord, RecordValidationError]


def _text(value) -> str:
    if value is None:
        return ''
    return str(value).strip()


def _parse_number(key, value):
    """Convert a numeric attribute; non-numeric and non-finite values become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        number = None
    if number is None or not math.isfinite(number):
        logger.warning("Non-numeric %s value %r – treating as missing.", key, value)
        return None
    return number


def _finite_only(value):
    """Replace NaN and infinities anywhere in a passthrough value with None."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _finite_only(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_finite_only(v) for v in value]
    return value


def _valid_uuid(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        return None


def extract_images(raw: dict) -> dict:
    """Collect image URLs into a flat variant → URL map, dropping empty variants."""
    images = {}
    declared = raw.get('images')
    if isinstance(declared, dict):
        for variant, url in declared.items():
            if isinstance(url, str) and url.strip():
                images[variant] = url.strip()

    store = raw.get('storeImage')
    if isinstance(store, str) and store.strip():
        images['store'] = store.strip()

    for view in IMAGE_VIEWS:
        sizes = raw.get(view)
        if not isinstance(sizes, dict):
            continue
        for resolution, suffix in (('source', ''), ('medium', 'Medium')):
            url = sizes.get(resolution)
            if isinstance(url, str) and url.strip():
                images[f'{view}{suffix}'] = url.strip()

    fleetchart = raw.get('fleetchartImage')
    if isinstance(fleetchart, str) and fleetchart.strip():
        images['fleetchartImage'] = fleetchart.strip()
    return images


def parse_record(raw) -> ParsedRecord:
    """
    Validate one upstream catalog payload.

    Returns a CatalogRecord, or a RecordValidationError when the payload lacks
    a valid UUID `id` or a non-blank `name`.
    """
    if not isinstance(raw, dict):
        return RecordValidationError(None, f'expected an object, got {type(raw).__name__}')

    external_id = _valid_uuid(raw.get('id'))
    if external_id is None:
        return RecordValidationError(None, f"missing or invalid id {raw.get('id')!r}")

    name = _text(raw.get('name'))
    if not name:
        return RecordValidationError(external_id, 'missing name')

    manufacturer = raw.get('manufacturer') or {}
    if not isinstance(manufacturer, dict):
        manufacturer = {}

    crew = raw.get('crew') if isinstance(raw.get('crew'), dict) else {}
    attributes = {
        'crew': {
            'min': _parse_number('crew.min', crew.get('min')) or 0,
            'max': _parse_number('crew.max', crew.get('max')) or 0,
        },
    }
    for key in NUMERIC_FIELDS:
        attributes[key] = _parse_number(key, raw.get(key))
    for key in TEXT_FIELDS:
        attributes[key] = _text(raw.get(key)) or None

    return CatalogRecord(
        external_id=external_id,
        slug=_text(raw.get('slug')) or slugify(name),
        name=name,
        manufacturer=Manufacturer(
            name=_text(manufacturer.get('name')),
            code=_text(manufacturer.get('code')),
            slug=_text(manufacturer.get('slug')),
        ),
        classification=_text(raw.get('classification')),
        classification_label=_text(raw.get('classificationLabel')),
        focus=_text(raw.get('focus')),
        size=_text(raw.get('size')),
        production_status=_text(raw.get('productionStatus')),
        attributes=attributes,
        images=extract_images(raw),
        extra={k: _finite_only(v) for k, v in raw.items() if k not in CONSUMED_KEYS},
    )


def dedupe_records(parsed: list) -> tuple:
    """
    Drop repeated external ids within one page (first occurrence wins).

    Returns (kept, duplicates). Validation errors are always kept so the
    caller can count them as skipped.
    """
    seen = set()
    kept, duplicates = [], []
    for item in parsed:
        if isinstance(item, CatalogRecord):
            if item.external_id in seen:
                logger.warning(
                    "Duplicate ship %s – keeping first occurrence, skipping duplicate.",
                    item.external_id,
                )
                duplicates.append(item)
                continue
            seen.add(item.external_id)
        kept.append(item)
    return kept, duplicates


def to_document(record: CatalogRecord) -> dict:
    """Map a CatalogRecord onto Ship fields, content hash included."""
    document = {
        'external_id': record.external_id,
        'slug': record.slug,
        'name': record.name,
        'manufacturer_name': record.manufacturer.name,
        'manufacturer_code': record.manufacturer.code,
        'manufacturer_slug': record.manufacturer.slug,
        'classification': record.classification,
        'classification_label': record.classification_label,
        'focus': record.focus,
        'size': record.size,
        'production_status': record.production_status,
        'attributes': record.attributes,
        'images': record.images,
    }
    document['content_hash'] = compute_hash(document)
    document['extra'] = record.extra
    return document


def compute_hash(document: dict) -> str:
    """Compute a stable SHA-256 hash of the significant ship fields for delta sync."""
    significant = {k: v for k, v in document.items() if k not in ('content_hash', 'extra')}
    serialized = json.dumps(significant, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(serialized.encode('utf-8')).hexdigest()
