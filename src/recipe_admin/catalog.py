"""
Local snapshot of the PDF artifacts stored in the external bucket.

The CatalogStore is the only writer of the snapshot:
- refresh() replaces it wholesale from the bucket search endpoint
- delete() removes a single entry once the backend has confirmed it

Filtering and sorting are pure functions over any sequence of entries, so the
presentation layer can combine them with a FilterState without touching the
store.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .backend import BackendClient
from .configuration import CatalogSettings
from .errors import RefreshError
from .models import CatalogEntry, FilterState, RawTags, SortField, SortOrder

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[Tuple[CatalogEntry, ...]], None]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# fromisoformat before 3.11 only takes 3 or 6 fractional digits and +HH:MM offsets
_FRACTION = re.compile(r"(?<=:\d{2})\.(\d+)")
_COMPACT_OFFSET = re.compile(r"(?<=\d)([+-]\d{2})(\d{2})$")


def _six_digits(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp as found in `createdAt`.

    Naive values are taken as UTC. Fractional seconds of any precision are
    accepted (truncated to microseconds). Returns None if the value is not a
    date.

    Example:
        >>> parse_timestamp("2024-05-01T10:00:00Z").isoformat()
        '2024-05-01T10:00:00+00:00'
        >>> parse_timestamp("2024-05-01 10:00:00.1234567Z").isoformat()
        '2024-05-01T10:00:00.123456+00:00'
        >>> parse_timestamp("yesterday") is None
        True
    """
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if ":" in text:
        text = _FRACTION.sub(_six_digits, text, count=1)
        text = _COMPACT_OFFSET.sub(r"\1:\2", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _extract_records(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    results = payload.get("results")
    if not isinstance(results, dict):
        return []
    records = results.get("studentUploadReadingDTOS")
    if not isinstance(records, list):
        return []
    return [record for record in records if isinstance(record, dict)]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def normalize_record(record: Dict[str, Any], settings: CatalogSettings, now: Optional[datetime] = None) -> CatalogEntry:
    """
    Turn a raw bucket record into a CatalogEntry.

    Args:
        record: One element of `results.studentUploadReadingDTOS`
        settings: Labels used for missing titles and ingredients
        now: Timestamp used when the record carries no creation date

    Returns:
        The normalized entry

    Raises:
        KeyError: If the record has no `idExterne`
    """
    entry_id = _text(record.get("idExterne"))
    if entry_id is None:
        raise KeyError("idExterne")

    tag1, tag2, tag3 = (_text(record.get(key)) for key in ("tag1", "tag2", "tag3"))
    url = str(record.get("url") or "")

    if tag1 is not None and tag1 != settings.ingredients_sentinel:
        ingredients = tag1
    else:
        ingredients = settings.ingredients_fallback

    created_at = tag3 or (now or datetime.now(timezone.utc)).isoformat()

    return CatalogEntry(
        id=entry_id,
        title=tag2 or settings.untitled_label,
        pdf_url=url,
        thumbnail_url=_text(record.get("thumbnailUrl")),
        ingredients_summary=ingredients,
        created_at=created_at,
        file_name=url[url.rfind("/") + 1 :],
        raw_tags=RawTags(tag1=tag1, tag2=tag2, tag3=tag3),
    )


def filter_entries(entries: Sequence[CatalogEntry], search: str) -> List[CatalogEntry]:
    """Case-insensitive substring match over title, ingredients and file name."""
    needle = (search or "").strip().casefold()
    if not needle:
        return list(entries)
    return [
        entry
        for entry in entries
        if any(needle in field.casefold() for field in (entry.title, entry.ingredients_summary, entry.file_name))
    ]


def _sort_key(sort_by: SortField) -> Callable[[CatalogEntry], Any]:
    if sort_by == SortField.CREATED_AT:
        return lambda entry: parse_timestamp(entry.created_at) or _EPOCH
    if sort_by == SortField.TITLE:
        return lambda entry: entry.title.casefold()
    if sort_by == SortField.FILE_NAME:
        return lambda entry: entry.file_name.casefold()
    return lambda entry: entry.ingredients_summary.casefold()


def sort_entries(
    entries: Sequence[CatalogEntry],
    sort_by: SortField = SortField.CREATED_AT,
    order: SortOrder = SortOrder.DESC,
) -> List[CatalogEntry]:
    """
    Sort entries by one field; `desc` puts the newest (or last) first.

    Equal keys keep their relative order in both directions.
    """
    return sorted(entries, key=_sort_key(SortField(sort_by)), reverse=SortOrder(order) == SortOrder.DESC)


class CatalogStore:
    """
    Owner of the catalog snapshot.

    Refreshes are sequenced: each call takes a new sequence number and only the
    most recent one may publish its result. Entries deleted while a refresh was
    in flight are dropped from that refresh's result. Those ids are only kept
    while at least one refresh is outstanding.
    """

    def __init__(self, client: BackendClient, settings: CatalogSettings) -> None:
        self._client = client
        self._settings = settings
        self._entries: Tuple[CatalogEntry, ...] = ()
        self._refresh_seq = 0
        self._refreshes_in_flight = 0
        self._deleted_during_refresh: Set[str] = set()
        self._listeners: List[SnapshotListener] = []
        self.loaded = False

    @property
    def entries(self) -> Tuple[CatalogEntry, ...]:
        return self._entries

    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        return next((entry for entry in self._entries if entry.id == entry_id), None)

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def _publish(self, entries: Tuple[CatalogEntry, ...]) -> None:
        self._entries = entries
        for listener in list(self._listeners):
            listener(entries)

    def _normalize_all(self, payload: Any) -> Tuple[CatalogEntry, ...]:
        now = datetime.now(timezone.utc)
        seen: Dict[str, CatalogEntry] = {}
        for record in _extract_records(payload):
            try:
                entry = normalize_record(record, self._settings, now=now)
            except KeyError:
                logger.warning(f"Skipping bucket record without idExterne: {record.get('url')}")
                continue
            if entry.id in seen:
                logger.warning(f"Duplicate bucket record {entry.id}; keeping the first one")
                continue
            seen[entry.id] = entry
        return tuple(seen.values())

    async def refresh(self) -> bool:
        """
        Reload the snapshot from the bucket search endpoint.

        Returns:
            True if this call published a new snapshot, False if a newer
            refresh superseded it

        Raises:
            RefreshError: If the listing failed and no newer refresh exists;
                the snapshot is left unchanged
        """
        self._refresh_seq += 1
        seq = self._refresh_seq
        self._refreshes_in_flight += 1

        try:
            try:
                payload = await self._client.search_bucket()
            except RefreshError:
                if seq != self._refresh_seq:
                    logger.warning(f"Ignoring failure of superseded catalog refresh #{seq}")
                    return False
                raise

            if seq != self._refresh_seq:
                logger.info(f"Discarding result of superseded catalog refresh #{seq}")
                return False

            entries = self._normalize_all(payload)
            if self._deleted_during_refresh:
                entries = tuple(entry for entry in entries if entry.id not in self._deleted_during_refresh)

            self.loaded = True
            self._publish(entries)
            logger.info(f"Catalog refreshed: {len(entries)} entries")
            return True
        finally:
            self._refreshes_in_flight -= 1
            if self._refreshes_in_flight == 0:
                self._deleted_during_refresh.clear()

    async def delete(self, entry_id: str) -> None:
        """
        Delete an artifact and drop it from the snapshot after confirmation.

        Raises:
            DeleteError: If the backend refused or could not be reached; the
                snapshot is left untouched
        """
        await self._client.delete_artifact(entry_id)
        if self._refreshes_in_flight:
            self._deleted_during_refresh.add(entry_id)
        remaining = tuple(entry for entry in self._entries if entry.id != entry_id)
        if len(remaining) != len(self._entries):
            self._publish(remaining)
        logger.info(f"Deleted catalog entry {entry_id}")

    def view(self, state: Optional[FilterState] = None) -> List[CatalogEntry]:
        state = state or FilterState()
        return sort_entries(filter_entries(self._entries, state.search), state.sort_by, state.sort_order)
