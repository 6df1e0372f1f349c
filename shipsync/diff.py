import enum
from dataclasses import dataclass
from typing import Optional

from .models import Ship
from .transformer import CatalogRecord, ParsedRecord, to_document


class ChangeKind(str, enum.Enum):
    NEW = 'new'
    UPDATED = 'updated'
    UNCHANGED = 'unchanged'
    SKIPPED = 'skipped'


@dataclass(frozen=True)
class Diff:
    kind: ChangeKind
    external_id: Optional[str] = None
    document: Optional[dict] = None
    sync_version: Optional[int] = None
    reason: str = ''

    @property
    def needs_write(self) -> bool:
        return self.kind in (ChangeKind.NEW, ChangeKind.UPDATED)


def classify(existing: Optional[Ship], incoming: ParsedRecord) -> Diff:
    """
    Classify an incoming catalog record against the stored ship.

    New and Updated results carry the normalized document and the
    sync_version it must be written with; Unchanged and Skipped carry none.
    """
    if not isinstance(incoming, CatalogRecord):
        return Diff(ChangeKind.SKIPPED, external_id=incoming.external_id, reason=incoming.reason)

    document = to_document(incoming)
    if existing is None:
        return Diff(ChangeKind.NEW, incoming.external_id, document, sync_version=1)

    if existing.content_hash == document['content_hash']:
        return Diff(ChangeKind.UNCHANGED, incoming.external_id)

    return Diff(
        ChangeKind.UPDATED,
        incoming.external_id,
        document,
        sync_version=existing.sync_version + 1,
    )
