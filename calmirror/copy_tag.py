"""Copy marker embedded in event titles.

A copy carries its origin in the title itself, ``[COPY] {fragment} [ID: {source_id}]``,
so no side table is needed to pair copies with the events they mirror. Any
title starting with the prefix is a copy and is never used as a sync source.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Union

from calmirror.models import EventRecord


COPY_PREFIX = "[COPY] "
TITLE_FRAGMENT_LENGTH = 10

_TRAILING_SOURCE_ID_RE = re.compile(r".*\[ID: (.*)\]\s*$")
_SOURCE_ID_RE = re.compile(r"\[ID: ([^\]]*)\]")


@dataclass(frozen=True)
class Original:
    event: EventRecord


@dataclass(frozen=True)
class Copy:
    event: EventRecord
    source_id: str | None


Classified = Union[Original, Copy]


def truncate_title(title: str) -> str:
    return (title or "")[:TITLE_FRAGMENT_LENGTH]


def encode_copy_title(title_fragment: str, source_id: str) -> str:
    if len(title_fragment) > TITLE_FRAGMENT_LENGTH:
        raise ValueError(f"title fragment longer than {TITLE_FRAGMENT_LENGTH} characters: {title_fragment!r}")
    return f"{COPY_PREFIX}{title_fragment} [ID: {source_id}]"


def copy_title_for(event: EventRecord) -> str:
    return encode_copy_title(truncate_title(event.summary), event.uid)


def is_copy(title: str) -> bool:
    return (title or "").startswith(COPY_PREFIX)


def decode_source_id(title: str) -> str | None:
    if not is_copy(title):
        return None
    body = title[len(COPY_PREFIX) :]
    # Ours is the last group and ends the title; the id itself may contain "]".
    trailing = _TRAILING_SOURCE_ID_RE.match(body)
    if trailing:
        source_id = trailing.group(1).strip()
    else:
        matches = _SOURCE_ID_RE.findall(body)
        if not matches:
            return None
        source_id = matches[-1].strip()
    return source_id or None


def classify(event: EventRecord) -> Classified:
    if is_copy(event.summary):
        return Copy(event=event, source_id=decode_source_id(event.summary))
    return Original(event=event)


def classify_all(events: Iterable[EventRecord]) -> list[Classified]:
    return [classify(event) for event in events]
