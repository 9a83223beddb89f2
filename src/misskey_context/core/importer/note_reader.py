"""Parse backend JSON into domain models, rejecting unexpected shapes."""

from datetime import UTC, datetime
from typing import Any

from misskey_context.errors import ValidationError
from misskey_context.models.note import Author, EmojiEntry, Note


def parse_timestamp(value: Any, *, note_id: str = "?") -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str):
        msg = f"note {note_id!r}: createdAt must be a string, got {type(value).__name__}"
        raise ValidationError(msg)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        msg = f"note {note_id!r}: bad createdAt {value!r}"
        raise ValidationError(msg) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _optional_str(raw: dict[str, Any], key: str, note_id: str) -> str | None:
    value = raw.get(key)
    if value is not None and not isinstance(value, str):
        msg = f"note {note_id!r}: {key} must be a string or null, got {type(value).__name__}"
        raise ValidationError(msg)
    return value


def _parse_author(raw: Any, note_id: str) -> Author:
    if not isinstance(raw, dict):
        msg = f"note {note_id!r}: user must be an object"
        raise ValidationError(msg)
    for key in ("id", "username"):
        if not isinstance(raw.get(key), str):
            msg = f"note {note_id!r}: user.{key} is missing or not a string"
            raise ValidationError(msg)
    return Author(
        id=raw["id"],
        username=raw["username"],
        name=_optional_str(raw, "name", note_id),
        host=_optional_str(raw, "host", note_id),
        avatar_url=_optional_str(raw, "avatarUrl", note_id),
    )


def _parse_files(raw: Any, note_id: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        msg = f"note {note_id!r}: files must be a list"
        raise ValidationError(msg)
    urls: list[str] = []
    for f in raw:
        if not isinstance(f, dict):
            msg = f"note {note_id!r}: files entries must be objects, got {type(f).__name__}"
            raise ValidationError(msg)
        url = f.get("thumbnailUrl")
        # Remote files without a generated thumbnail come back with thumbnailUrl null.
        if url is None:
            continue
        if not isinstance(url, str):
            msg = f"note {note_id!r}: files thumbnailUrl must be a string or null"
            raise ValidationError(msg)
        urls.append(url)
    return tuple(urls)


def _parse_reactions(raw: Any, note_id: str) -> dict[str, int]:
    if raw is None:
        return {}
    if not isinstance(raw, dict) or not all(
        isinstance(k, str) and isinstance(v, int) and not isinstance(v, bool)
        for k, v in raw.items()
    ):
        msg = f"note {note_id!r}: reactions must map strings to integers"
        raise ValidationError(msg)
    return dict(raw)


def _parse_emoji_map(raw: Any, note_id: str) -> dict[str, str]:
    """Accept both ``{name: url}`` and the older ``[{name, url}]`` form."""
    if raw is None:
        return {}
    if isinstance(raw, list):
        if not all(isinstance(e, dict) for e in raw):
            msg = f"note {note_id!r}: emojis list entries must be objects"
            raise ValidationError(msg)
        pairs = [(e.get("name"), e.get("url")) for e in raw]
    elif isinstance(raw, dict):
        pairs = list(raw.items())
    else:
        msg = f"note {note_id!r}: emojis must be an object or a list"
        raise ValidationError(msg)
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in pairs):
        msg = f"note {note_id!r}: emojis entries must be name/url strings"
        raise ValidationError(msg)
    return dict(pairs)


def parse_note(raw: Any) -> Note:
    """Parse one note object from the backend.

    Only ``id``, ``createdAt``, ``user.id`` and ``user.username`` are
    required; everything else may be missing or null.

    Raises:
        ValidationError: If the object does not have the expected shape.
    """
    if not isinstance(raw, dict):
        msg = f"expected a note object, got {type(raw).__name__}"
        raise ValidationError(msg)
    note_id = raw.get("id")
    if not isinstance(note_id, str) or not note_id:
        msg = f"note id is missing or not a string: {note_id!r}"
        raise ValidationError(msg)

    return Note(
        id=note_id,
        created_at=parse_timestamp(raw.get("createdAt"), note_id=note_id),
        user=_parse_author(raw.get("user"), note_id),
        text=_optional_str(raw, "text", note_id),
        cw=_optional_str(raw, "cw", note_id),
        reply_id=_optional_str(raw, "replyId", note_id),
        files=_parse_files(raw.get("files"), note_id),
        reactions=_parse_reactions(raw.get("reactions"), note_id),
        emojis=_parse_emoji_map(raw.get("emojis"), note_id),
    )


def parse_notes(raw: Any) -> list[Note]:
    """Parse a JSON array of notes, keeping backend order."""
    if not isinstance(raw, list):
        msg = f"expected a list of notes, got {type(raw).__name__}"
        raise ValidationError(msg)
    return [parse_note(item) for item in raw]


def parse_emoji_catalog(raw: Any) -> list[EmojiEntry]:
    """Parse the ``emojis`` endpoint response."""
    if not isinstance(raw, dict) or not isinstance(raw.get("emojis"), list):
        msg = "emoji catalog must be an object with an 'emojis' list"
        raise ValidationError(msg)

    entries: list[EmojiEntry] = []
    for item in raw["emojis"]:
        if not isinstance(item, dict):
            msg = f"emoji entry must be an object, got {type(item).__name__}"
            raise ValidationError(msg)
        name, url = item.get("name"), item.get("url")
        if not isinstance(name, str) or not isinstance(url, str):
            msg = f"emoji entry needs string name and url: {item!r}"
            raise ValidationError(msg)
        category, aliases = item.get("category"), item.get("aliases", [])
        if category is not None and not isinstance(category, str):
            msg = f"emoji {name!r}: category must be a string or null"
            raise ValidationError(msg)
        if aliases is None:
            aliases = []
        if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
            msg = f"emoji {name!r}: aliases must be a list of strings"
            raise ValidationError(msg)
        entries.append(
            EmojiEntry(
                name=name,
                url=url,
                category=category,
                aliases=tuple(a for a in aliases if a),
            )
        )
    return entries
