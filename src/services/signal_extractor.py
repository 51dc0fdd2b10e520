"""Extract structured signals and identifiers from free-text agent notifications.

Everything here is pure and never raises on malformed payloads; unknown
shapes simply yield nothing.
"""

import re
from typing import Any, Iterable, Iterator, Optional

from src.models.signal import Blocked, ProgressUpdate, Signal, TaskComplete
from src.utils.config import SESSION_NAMESPACE


TASK_COMPLETE_PATTERN = re.compile(r"TASK_COMPLETE:\s*(.+)", re.IGNORECASE)
PROGRESS_UPDATE_PATTERN = re.compile(
    r"PROGRESS_UPDATE:\s*(.+?)\s*\|\s*next:\s*(.+?)\s*\|\s*eta:\s*(.+)",
    re.IGNORECASE,
)
BLOCKED_PATTERN = re.compile(
    r"BLOCKED:\s*(.+?)\s*\|\s*need:\s*(.+?)\s*\|\s*meanwhile:\s*(.+)",
    re.IGNORECASE,
)

SESSION_ID_KEYS = ("session_id", "sessionId", "session_key", "sessionKey")


def _walk(value: Any) -> Iterator[tuple[Optional[str], Any]]:
    """Depth-first (key, value) pairs; list items carry no key."""
    if isinstance(value, dict):
        for key, child in value.items():
            yield key, child
            yield from _walk(child)
    elif isinstance(value, (list, tuple)):
        for child in value:
            yield None, child
            yield from _walk(child)


def collect_strings(payload: Any) -> list[str]:
    """Every string in the payload tree, in document order."""
    if isinstance(payload, str):
        return [payload]
    return [value for _, value in _walk(payload) if isinstance(value, str)]


def find_first_key(payload: Any, keys: Iterable[str]) -> Optional[str]:
    """First non-blank string stored under any of ``keys``, searched depth-first."""
    wanted = set(keys)
    for key, value in _walk(payload):
        if key in wanted and isinstance(value, str) and value.strip():
            return value
    return None


def _match_signal(text: str) -> Optional[Signal]:
    """First signal in ``text`` by priority. A completion marker with a blank summary is not a signal, so a later pattern may still match."""
    match = TASK_COMPLETE_PATTERN.search(text)
    if match:
        summary = match.group(1).strip()
        if summary:
            return TaskComplete(summary=summary, raw=match.group(0).strip())

    match = PROGRESS_UPDATE_PATTERN.search(text)
    if match:
        return ProgressUpdate(
            changed=match.group(1).strip(),
            next=match.group(2).strip(),
            eta=match.group(3).strip(),
            raw=match.group(0).strip(),
        )

    match = BLOCKED_PATTERN.search(text)
    if match:
        return Blocked(
            blocked_on=match.group(1).strip(),
            need=match.group(2).strip(),
            meanwhile=match.group(3).strip(),
            raw=match.group(0).strip(),
        )

    return None


def extract_signals(payload: Any) -> list[Signal]:
    """
    Signals found anywhere in ``payload``.

    Each string yields at most one signal (completion, then progress, then
    blocked). The same signal repeated across the payload is reported once.
    """
    signals: list[Signal] = []
    seen: set[tuple[str, str]] = set()
    for text in collect_strings(payload):
        signal = _match_signal(text)
        if signal is None:
            continue
        identity = (signal.kind, signal.raw)
        if identity in seen:
            continue
        seen.add(identity)
        signals.append(signal)
    return signals


def normalize_session_id(session_id: str) -> str:
    """Strip the Gateway's agent namespace from a session key."""
    session_id = session_id.strip()
    if session_id.startswith(SESSION_NAMESPACE):
        return session_id[len(SESSION_NAMESPACE):]
    return session_id


def extract_session_id(payload: Any) -> Optional[str]:
    """Session id referenced by a notification, without the agent namespace."""
    raw = find_first_key(payload, SESSION_ID_KEYS)
    if raw is None:
        return None
    return normalize_session_id(raw) or None
