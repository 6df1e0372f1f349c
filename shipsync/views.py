import hmac
import json
import logging
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.cache import patch_cache_control
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .orchestrator import STATUS_ALREADY_RUNNING, TRIGGER_MANUAL, TRIGGERS, SyncOrchestrator
from .status import StatusStore
from .storage import ShipStorage

logger = logging.getLogger(__name__)


def _authorized(request) -> bool:
    secret = settings.SHIP_SYNC_CRON_SECRET
    if not secret:
        return True
    header = request.headers.get('Authorization', '')
    return hmac.compare_digest(header.encode(), f'Bearer {secret}'.encode())


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def trigger_sync(request):
    """Run a sync now. Protected by an optional shared bearer secret."""
    if not _authorized(request):
        logger.warning("Unauthorized ship sync trigger from %s.", request.META.get('REMOTE_ADDR'))
        return JsonResponse({'error': 'Unauthorized'}, status=401)

    trigger = request.GET.get('trigger', TRIGGER_MANUAL)
    if trigger not in TRIGGERS:
        return JsonResponse({'error': f'Unknown trigger {trigger!r}'}, status=400)

    logger.info("Ship sync triggered over HTTP (%s).", trigger)
    summary = SyncOrchestrator().run(trigger)
    if summary.has_errors:
        logger.warning("Ship sync finished with errors: %s", list(summary.errors)[:10])

    status = 409 if summary.status == STATUS_ALREADY_RUNNING else 200
    return JsonResponse(summary.as_dict(), status=status)


@require_GET
def sync_status(request):
    snapshot = StatusStore().get_latest()
    if snapshot is None:
        body = {'lastSyncAt': None, 'shipCount': 0, 'status': 'unknown', 'syncVersion': 0}
    else:
        body = snapshot.as_dict()

    response = JsonResponse(body)
    patch_cache_control(response, public=True, max_age=60, stale_while_revalidate=30)
    return response


@require_GET
def ship_detail(request, id_or_slug):
    ship = ShipStorage().get_by_id_or_slug(id_or_slug)
    if ship is None:
        return JsonResponse({'error': 'Ship not found'}, status=404)

    response = JsonResponse(ship.as_dict())
    patch_cache_control(response, public=True, max_age=300, stale_while_revalidate=60)
    return response


LIST_FILTERS = (
    ('manufacturer', 'manufacturer'),
    ('size', 'size'),
    ('classification', 'classification'),
    ('productionStatus', 'production_status'),
)


def _int_param(params, name, default, minimum, maximum=None):
    """Return (value, error) for an optional integer query parameter."""
    raw = params.get(name)
    if raw is None:
        return default, None
    try:
        value = int(raw)
    except ValueError:
        return None, f'{name}: expected an integer'
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f'between {minimum} and {maximum}' if maximum is not None else f'at least {minimum}'
        return None, f'{name}: must be {bounds}'
    return value, None


def _validate_list_query(params):
    """Return (query, errors) for the ship list query string."""
    errors = []
    page, error = _int_param(params, 'page', 1, 1)
    if error:
        errors.append(error)
    page_size, error = _int_param(params, 'pageSize', 25, 1, settings.SHIP_LIST_MAX_PAGE_SIZE)
    if error:
        errors.append(error)

    query = {'page': page, 'page_size': page_size}
    for param, key in LIST_FILTERS:
        query[key] = params.get(param) or None
    search = params.get('search')
    if search is not None and not search.strip():
        errors.append('search: must not be empty')
    query['search'] = (search or '').strip() or None
    return query, errors


@require_GET
def ship_list(request):
    query, errors = _validate_list_query(request.GET)
    if errors:
        return JsonResponse({'error': 'Invalid query parameters', 'details': errors}, status=400)

    result = ShipStorage().find(**query)
    result['items'] = [ship.as_dict() for ship in result['items']]
    response = JsonResponse(result)
    patch_cache_control(response, public=True, max_age=300, stale_while_revalidate=60)
    return response


def _validate_batch_ids(body):
    """Return (ids, errors) for a batch request body."""
    if not isinstance(body, dict) or not isinstance(body.get('ids'), list):
        return None, ['ids: expected a list of UUID strings']

    ids = body['ids']
    limit = settings.SHIP_BATCH_MAX_IDS
    errors = []
    if not ids:
        errors.append('ids: at least one id is required')
    if len(ids) > limit:
        errors.append(f'ids: at most {limit} ids are allowed')
    for index, value in enumerate(ids):
        try:
            uuid.UUID(value)
        except (TypeError, ValueError, AttributeError):
            errors.append(f'ids.{index}: invalid UUID')
    return ids, errors


@csrf_exempt
@require_POST
def ship_batch(request):
    try:
        body = json.loads(request.body)
    except ValueError:
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)

    ids, errors = _validate_batch_ids(body)
    if errors:
        return JsonResponse({'error': 'Invalid request body', 'details': errors}, status=400)

    ships = ShipStorage().get_many(ids)
    response = JsonResponse({'items': [ship.as_dict() for ship in ships]})
    patch_cache_control(response, no_store=True)
    return response


@require_GET
def manufacturers(request):
    response = JsonResponse({'items': ShipStorage().manufacturers()})
    patch_cache_control(response, public=True, max_age=3600)
    return response
