from __future__ import annotations

import logging
from typing import Any, Iterable

from calmirror.copy_tag import Copy, Original, classify_all, copy_title_for
from calmirror.matcher import copy_has_drifted, find_natural_match, same_instant
from calmirror.models import EventRecord, SyncAction


logger = logging.getLogger(__name__)


def _sorted_copies(copies: Iterable[Copy]) -> list[Copy]:
    return sorted(copies, key=lambda item: ((item.event.uid or ""), (item.event.href or "")))


def collect_orphans(copies: Iterable[Copy], source_events: Iterable[EventRecord]) -> list[Copy]:
    """Copies whose source id is missing or no longer among the source events.

    Membership is by id only; a source whose content changed still justifies
    its copy.
    """
    live_ids = {event.uid for event in source_events}
    return [item for item in copies if item.source_id is None or item.source_id not in live_ids]


def pair_copies(sources: Iterable[EventRecord], copies: Iterable[Copy]) -> tuple[dict[int, Copy], list[Copy]]:
    """Give each source at most one of the copies carrying its id.

    A repeating event expands into several sources sharing one id. A copy
    starting at the same instant as a source is paired with it first; the
    sources still unpaired then take the remaining copies in ``(uid, href)``
    order. Copies of those ids left over after that are duplicates. Pairings
    are keyed by ``id()`` of the source record.
    """
    by_source_id: dict[str, list[Copy]] = {}
    for item in _sorted_copies(copies):
        if item.source_id is not None:
            by_source_id.setdefault(item.source_id, []).append(item)

    source_list = list(sources)
    pairs: dict[int, Copy] = {}
    for source in source_list:
        candidates = by_source_id.get(source.uid, [])
        for index, item in enumerate(candidates):
            if same_instant(item.event.start, source.start):
                pairs[id(source)] = candidates.pop(index)
                break
    for source in source_list:
        candidates = by_source_id.get(source.uid, [])
        if id(source) not in pairs and candidates:
            pairs[id(source)] = candidates.pop(0)

    live_ids = {source.uid for source in source_list}
    duplicates = [
        item for source_id, remaining in by_source_id.items() if source_id in live_ids for item in remaining
    ]
    return pairs, duplicates


def _delete_copy(store: Any, target_calendar_id: str, copy: Copy, reason: str) -> SyncAction:
    event = copy.event
    try:
        store.delete_event(target_calendar_id, event)
    except Exception as exc:
        logger.warning("Error deleting copy %r: %s", event.summary, exc)
        return SyncAction(
            action="error",
            calendar_id=target_calendar_id,
            uid=event.uid,
            title=event.summary,
            source_id=copy.source_id or "",
            reason="delete",
            error=f"{type(exc).__name__}: {exc}",
        )
    action = SyncAction(
        action="deleted",
        calendar_id=target_calendar_id,
        uid=event.uid,
        title=event.summary,
        source_id=copy.source_id or "",
        reason=reason,
    )
    logger.info(action.describe())
    return action


def _create_copy(store: Any, target_calendar_id: str, source: EventRecord, copy_color: str) -> SyncAction:
    title = copy_title_for(source)
    draft = EventRecord(
        calendar_id=target_calendar_id,
        uid="",
        summary=title,
        description=source.description or "",
        location=source.location or "",
        start=source.start,
        end=source.end,
        color=copy_color,
    )
    try:
        created = store.create_event(target_calendar_id, draft)
    except Exception as exc:
        logger.warning("Error creating copy of %r: %s", source.summary, exc)
        return SyncAction(
            action="error",
            calendar_id=target_calendar_id,
            title=title,
            source_id=source.uid,
            reason="create",
            error=f"{type(exc).__name__}: {exc}",
        )
    action = SyncAction(
        action="created",
        calendar_id=target_calendar_id,
        uid=created.uid,
        title=title,
        source_id=source.uid,
        reason="missing_copy",
    )
    logger.info(action.describe())
    return action


def _update_copy(
    store: Any, target_calendar_id: str, copy: Copy, source: EventRecord, copy_color: str
) -> SyncAction:
    # The tag keeps pointing at the same source; only the fragment may change.
    updated = copy.event.with_updates(
        summary=copy_title_for(source),
        start=source.start,
        end=source.end,
        description=source.description or "",
        location=source.location or "",
        color=copy_color,
    )
    try:
        store.update_event(target_calendar_id, updated)
    except Exception as exc:
        logger.warning("Error updating copy %r: %s", copy.event.summary, exc)
        return SyncAction(
            action="error",
            calendar_id=target_calendar_id,
            uid=copy.event.uid,
            title=copy.event.summary,
            source_id=source.uid,
            reason="update",
            error=f"{type(exc).__name__}: {exc}",
        )
    action = SyncAction(
        action="updated",
        calendar_id=target_calendar_id,
        uid=copy.event.uid,
        title=updated.summary,
        source_id=source.uid,
        reason="source_changed",
    )
    logger.info(action.describe())
    return action


def reconcile_pass(
    store: Any,
    *,
    source_events: Iterable[EventRecord],
    target_events: Iterable[EventRecord],
    target_calendar_id: str,
    copy_color: str,
) -> list[SyncAction]:
    """One directional pass over one window: mirror source originals into the target.

    Only events classified as copies are ever handed to ``update_event`` or
    ``delete_event``.
    """
    target_list = list(target_events)
    target_items = classify_all(target_list)
    target_copies = [item for item in target_items if isinstance(item, Copy)]
    source_items = classify_all(source_events)
    source_originals = [item.event for item in source_items if isinstance(item, Original)]

    actions: list[SyncAction] = []

    orphans = collect_orphans(target_copies, source_originals)
    orphan_keys = {id(item) for item in orphans}
    live_copies = [item for item in target_copies if id(item) not in orphan_keys]
    pairs, duplicates = pair_copies(source_originals, live_copies)

    for item in orphans:
        actions.append(_delete_copy(store, target_calendar_id, item, "orphaned"))
    for item in duplicates:
        actions.append(_delete_copy(store, target_calendar_id, item, "duplicate"))

    for item in source_items:
        source = item.event
        if isinstance(item, Copy):
            actions.append(
                SyncAction(
                    action="skipped",
                    calendar_id=target_calendar_id,
                    uid=source.uid,
                    title=source.summary,
                    source_id=item.source_id or "",
                    reason="is_copy",
                )
            )
            continue

        if find_natural_match(source, target_list) is not None:
            actions.append(
                SyncAction(
                    action="skipped",
                    calendar_id=target_calendar_id,
                    uid=source.uid,
                    title=source.summary,
                    source_id=source.uid,
                    reason="natural_match",
                )
            )
            continue

        existing = pairs.get(id(source))
        if existing is None:
            actions.append(_create_copy(store, target_calendar_id, source, copy_color))
        elif copy_has_drifted(existing.event, source):
            actions.append(_update_copy(store, target_calendar_id, existing, source, copy_color))
        else:
            actions.append(
                SyncAction(
                    action="unchanged",
                    calendar_id=target_calendar_id,
                    uid=existing.event.uid,
                    title=existing.event.summary,
                    source_id=source.uid,
                    reason="up_to_date",
                )
            )
    return actions
