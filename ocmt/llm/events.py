"""Typed events decoded from the backend's event feed.

The feed carries JSON objects shaped ``{"type": ..., "properties": {...}}``.
Everything the stream consumer looks at is decoded here, once, into frozen
dataclasses. Payloads that are unknown or do not have the expected shape
decode to ``None`` and are dropped by the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Part:
    id: str
    session_id: str
    message_id: str | None
    type: str
    text: str = ""


@dataclass(frozen=True)
class MessageInfo:
    id: str
    session_id: str
    role: str
    completed_at: Any = None
    finish: str | None = None
    error: dict | None = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at not in (None, "", 0)

    @property
    def is_assistant(self) -> bool:
        return self.role == "assistant"

    def error_summary(self) -> tuple[str, str]:
        """Return (name, message) for a message carrying an error."""
        return _error_fields(self.error)


@dataclass(frozen=True)
class Permission:
    id: str
    session_id: str
    type: str
    pattern: str | list | None = None
    title: str = ""
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class MessageUpdated:
    info: MessageInfo

    @property
    def session_id(self) -> str:
        return self.info.session_id


@dataclass(frozen=True)
class PartUpdated:
    part: Part

    @property
    def session_id(self) -> str:
        return self.part.session_id


@dataclass(frozen=True)
class PermissionUpdated:
    permission: Permission

    @property
    def session_id(self) -> str:
        return self.permission.session_id


@dataclass(frozen=True)
class SessionError:
    session_id: str | None
    name: str
    message: str


@dataclass(frozen=True)
class SessionIdle:
    session_id: str


Event = Union[MessageUpdated, PartUpdated, PermissionUpdated, SessionError, SessionIdle]


class _Malformed(Exception):
    pass


def _require(data: dict, key: str, kind=str):
    value = data.get(key)
    if not isinstance(value, kind):
        raise _Malformed(f"missing or invalid '{key}'")
    return value


def _error_fields(error: dict | None) -> tuple[str, str]:
    if not isinstance(error, dict):
        return "UnknownError", ""
    name = error.get("name") or "UnknownError"
    data = error.get("data")
    message = ""
    if isinstance(data, dict):
        message = str(data.get("message") or "")
    if not message:
        message = str(error.get("message") or "")
    return str(name), message


def decode_message_info(info: dict) -> MessageInfo:
    """Decode a message envelope's ``info`` object (also used for history)."""
    if not isinstance(info, dict):
        raise _Malformed("info is not an object")
    time = info.get("time") if isinstance(info.get("time"), dict) else {}
    error = info.get("error")
    return MessageInfo(
        id=_require(info, "id"),
        session_id=_require(info, "sessionID"),
        role=_require(info, "role"),
        completed_at=time.get("completed"),
        finish=info.get("finish") if isinstance(info.get("finish"), str) else None,
        error=error if isinstance(error, dict) else None,
    )


def decode_part(part: dict) -> Part:
    if not isinstance(part, dict):
        raise _Malformed("part is not an object")
    message_id = part.get("messageID")
    text = part.get("text")
    return Part(
        id=_require(part, "id"),
        session_id=_require(part, "sessionID"),
        message_id=message_id if isinstance(message_id, str) else None,
        type=_require(part, "type"),
        text=text if isinstance(text, str) else "",
    )


def _decode_message_updated(props: dict) -> MessageUpdated:
    return MessageUpdated(decode_message_info(props.get("info")))


def _decode_part_updated(props: dict) -> PartUpdated:
    return PartUpdated(decode_part(props.get("part")))


def _decode_permission_updated(props: dict) -> PermissionUpdated:
    metadata = props.get("metadata")
    pattern = props.get("pattern")
    return PermissionUpdated(Permission(
        id=_require(props, "id"),
        session_id=_require(props, "sessionID"),
        type=_require(props, "type"),
        pattern=pattern if isinstance(pattern, (str, list)) else None,
        title=props.get("title") if isinstance(props.get("title"), str) else "",
        metadata=metadata if isinstance(metadata, dict) else {},
    ))


def _decode_session_error(props: dict) -> SessionError:
    session_id = props.get("sessionID")
    name, message = _error_fields(props.get("error"))
    return SessionError(
        session_id=session_id if isinstance(session_id, str) else None,
        name=name,
        message=message,
    )


def _decode_session_idle(props: dict) -> SessionIdle:
    return SessionIdle(_require(props, "sessionID"))


_DECODERS = {
    "message.updated": _decode_message_updated,
    "message.part.updated": _decode_part_updated,
    "permission.updated": _decode_permission_updated,
    "session.error": _decode_session_error,
    "session.idle": _decode_session_idle,
}


def decode_history(messages: Any) -> list[tuple[MessageInfo, list[Part]]]:
    """Decode a session's message history, skipping malformed entries."""
    if not isinstance(messages, list):
        logger.debug("message history is not a list: %r", type(messages))
        return []

    decoded = []
    for entry in messages:
        if not isinstance(entry, dict):
            continue
        try:
            info = decode_message_info(entry.get("info"))
        except _Malformed as e:
            logger.debug("skipping malformed history entry: %s", e)
            continue
        parts = []
        for raw_part in entry.get("parts") or []:
            try:
                parts.append(decode_part(raw_part))
            except _Malformed:
                continue
        decoded.append((info, parts))
    return decoded


def decode_event(raw: Any) -> Event | None:
    """Decode one raw feed payload. Returns None for anything unusable."""
    if not isinstance(raw, dict):
        logger.debug("dropping non-object event: %r", raw)
        return None

    event_type = raw.get("type")
    decoder = _DECODERS.get(event_type)
    if decoder is None:
        logger.debug("ignoring event type %r", event_type)
        return None

    props = raw.get("properties")
    if not isinstance(props, dict):
        logger.debug("dropping %s event without properties", event_type)
        return None

    try:
        return decoder(props)
    except _Malformed as e:
        logger.debug("dropping malformed %s event: %s", event_type, e)
        return None
