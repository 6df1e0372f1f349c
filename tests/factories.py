import uuid

import responses as responses_lib
from responses import matchers

from shipsync.diff import classify
from shipsync.models import Ship
from shipsync.storage import ShipStorage
from shipsync.transformer import parse_record

BASE_URL = 'https://catalog.fake-fleet.test/v1'
MODELS_URL = f'{BASE_URL}/models'


def make_ship_payload(n, **overrides):
    """A FleetYards-style catalog record."""
    payload = {
        'id': str(uuid.UUID(int=n)),
        'slug': f'ship-{n}',
        'name': f'Ship {n}',
        'manufacturer': {'name': 'Anvil Aerospace', 'code': 'ANVL', 'slug': 'anvil-aerospace', 'longName': 'Anvil'},
        'classification': 'combat',
        'classificationLabel': 'Combat',
        'focus': 'Light Fighter',
        'size': 'small',
        'productionStatus': 'flight-ready',
        'crew': {'min': 1, 'max': 1},
        'cargo': 0,
        'length': 24.0,
        'beam': 18.0,
        'height': 6.0,
        'mass': 50000,
        'pledgePrice': 90,
        'storeImage': f'https://img.test/{n}/store.jpg',
        'angledView': {'source': f'https://img.test/{n}/angled.jpg', 'small': '', 'medium': f'https://img.test/{n}/angled-m.jpg', 'large': ''},
        'updatedAt': '2024-01-01T00:00:00Z',
    }
    payload.update(overrides)
    return payload


def seed_ship(payload, content_hash=None, sync_version=1):
    """Store a ship as a previous run would have, optionally with a stale hash."""
    diff = classify(None, parse_record(payload))
    ship = ShipStorage().upsert(diff)
    if content_hash is not None or sync_version != 1:
        Ship.objects.filter(pk=ship.pk).update(
            content_hash=content_hash or ship.content_hash,
            sync_version=sync_version,
        )
        ship.refresh_from_db()
    return ship


def add_page(page, body=None, status=200, headers=None, per_page=10):
    """Register one catalog page response on the active responses mock."""
    kwargs = {'status': status, 'headers': headers or {}}
    if isinstance(body, Exception):
        kwargs['body'] = body
    elif body is not None:
        kwargs['json'] = body
    responses_lib.add(
        responses_lib.GET,
        MODELS_URL,
        match=[matchers.query_param_matcher({'page': str(page), 'perPage': str(per_page)})],
        **kwargs,
    )
