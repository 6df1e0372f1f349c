import logging
import math
import uuid

from django.db import transaction
from django.db.models import Count, Q

from .diff import Diff
from .models import Ship

logger = logging.getLogger(__name__)


def _as_uuid(value: str):
    try:
        return str(uuid.UUID(value))
    except (TypeError, ValueError, AttributeError):
        return None


class ShipStorage:
    """Ship persistence on top of the Django ORM, keyed by external id."""

    def existing_for(self, external_ids) -> dict:
        """Bulk-read stored ships for a page of records, keyed by external id."""
        ids = [i for i in external_ids if i]
        if not ids:
            return {}
        return {ship.external_id: ship for ship in Ship.objects.filter(external_id__in=ids)}

    def upsert(self, diff: Diff) -> Ship:
        """
        Write a New or Updated diff.

        Runs in its own transaction so a failing row does not poison the
        rest of the run. Raises django.db.DatabaseError on failure.
        """
        if not diff.needs_write:
            raise ValueError(f"Refusing to write a {diff.kind.value} diff for {diff.external_id}.")

        defaults = {k: v for k, v in diff.document.items() if k != 'external_id'}
        defaults['sync_version'] = diff.sync_version
        with transaction.atomic():
            ship, created = Ship.objects.update_or_create(
                external_id=diff.external_id,
                defaults=defaults,
            )
        logger.debug(
            "Ship %s %s at v%d.", diff.external_id,
            'created' if created else 'updated', ship.sync_version,
        )
        return ship

    def count(self) -> int:
        return Ship.objects.count()

    def get_by_id_or_slug(self, value: str):
        value = (value or '').strip()
        if not value:
            return None
        external_id = _as_uuid(value)
        if external_id is not None:
            return Ship.objects.filter(external_id=external_id).first()
        return Ship.objects.filter(slug=value).first()

    def get_many(self, external_ids) -> list:
        """Ships for the given ids, in request order; unknown ids are omitted."""
        normalized = [_as_uuid(i) for i in external_ids]
        found = {s.external_id: s for s in Ship.objects.filter(external_id__in=[i for i in normalized if i])}
        return [found[i] for i in normalized if i in found]

    def manufacturers(self) -> list:
        rows = (
            Ship.objects.exclude(manufacturer_name='')
            .values('manufacturer_name', 'manufacturer_code', 'manufacturer_slug')
            .annotate(ship_count=Count('id'))
            .order_by('manufacturer_name')
        )
        return [
            {
                'name': row['manufacturer_name'],
                'code': row['manufacturer_code'],
                'slug': row['manufacturer_slug'],
                'shipCount': row['ship_count'],
            }
            for row in rows
        ]

    def find(self, page: int = 1, page_size: int = 25, manufacturer=None, size=None,
             classification=None, production_status=None, search=None) -> dict:
        """
        Filtered, paginated ship listing ordered by name.

        `manufacturer` matches the manufacturer code, slug or name; the other
        filters are case-insensitive exact matches, and `search` looks for a
        substring of the ship or manufacturer name.
        """
        ships = Ship.objects.all()
        if manufacturer:
            ships = ships.filter(
                Q(manufacturer_code__iexact=manufacturer)
                | Q(manufacturer_slug__iexact=manufacturer)
                | Q(manufacturer_name__iexact=manufacturer)
            )
        if size:
            ships = ships.filter(size__iexact=size)
        if classification:
            ships = ships.filter(classification__iexact=classification)
        if production_status:
            ships = ships.filter(production_status__iexact=production_status)
        if search:
            ships = ships.filter(Q(name__icontains=search) | Q(manufacturer_name__icontains=search))

        total = ships.count()
        offset = (page - 1) * page_size
        return {
            'items': list(ships.order_by('name', 'id')[offset:offset + page_size]),
            'total': total,
            'page': page,
            'pageSize': page_size,
            'totalPages': math.ceil(total / page_size),
        }
