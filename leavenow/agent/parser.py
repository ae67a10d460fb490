"""Delimited-field parsing for relay payloads.

Every webhook answers with a flat string rather than JSON: fields are joined
by a single delimiter (``~`` by default) and the last field may be followed by
a terminator (a NUL byte).  For example a geolocation response looks like::

    52.520008~13.404954~38

Error messages are prose produced by the relay with the HTTP status code at a
fixed offset::

    error status 404 from www.googleapis.com
"""

from __future__ import annotations

DEFAULT_DELIMITER = "~"
DEFAULT_TERMINATOR = "\0"

# "error status " is 13 characters long.
_STATUS_OFFSET = 13
_STATUS_WIDTH = 3


def _truncate(payload: str, terminator: str) -> str:
    if terminator:
        cut = payload.find(terminator)
        if cut != -1:
            return payload[:cut]
    return payload


def split_fields(
    payload: str,
    delimiter: str = DEFAULT_DELIMITER,
    terminator: str = DEFAULT_TERMINATOR,
) -> list[str]:
    """Split *payload* into its ordered fields.

    Anything after the first *terminator* is discarded.  ``"a~b~c"`` and
    ``"a~b~c\\0"`` both give ``["a", "b", "c"]``; empty fields are kept.
    """
    return _truncate(payload, terminator).split(delimiter)


class FieldReader:
    """Sequential cursor over the fields of one payload.

    Reading past the last field returns empty strings (and zeros for the
    numeric readers) instead of raising, matching how a short payload from
    the relay should degrade.
    """

    def __init__(
        self,
        payload: str,
        delimiter: str = DEFAULT_DELIMITER,
        terminator: str = DEFAULT_TERMINATOR,
    ) -> None:
        self._delimiter = delimiter
        self._fields = split_fields(payload, delimiter, terminator)
        self._index = 0

    def __len__(self) -> int:
        return len(self._fields)

    @property
    def remaining(self) -> int:
        return max(0, len(self._fields) - self._index)

    def next(self) -> str:
        if self._index >= len(self._fields):
            return ""
        field = self._fields[self._index]
        self._index += 1
        return field

    def rest(self) -> str:
        """Return everything not read yet, delimiters included."""
        field = self._delimiter.join(self._fields[self._index :])
        self._index = len(self._fields)
        return field

    def next_int(self) -> int:
        raw = self.next().strip()
        try:
            return int(float(raw))
        except (ValueError, OverflowError):
            return 0

    def next_float(self) -> float:
        raw = self.next().strip()
        try:
            return float(raw)
        except ValueError:
            return 0.0


def parse_status_code(message: str) -> int:
    """Extract the HTTP status code embedded in a relay error message.

    Returns 0 when the expected slice is not a number.
    """
    raw = message[_STATUS_OFFSET : _STATUS_OFFSET + _STATUS_WIDTH]
    if len(raw) != _STATUS_WIDTH or not raw.isdigit():
        return 0
    return int(raw)


def split_hook_name(name: str) -> tuple[str, str, str]:
    """Split ``{device_id}/{hook}/{event}[/{part}]`` into its three parts.

    ``"abc123/hook-response/calendar_event/0"`` ->
    ``("abc123", "hook-response", "calendar_event")``.
    """
    parts = name.split("/")
    if len(parts) < 3:
        msg = f"Not a webhook channel name: {name!r}"
        raise ValueError(msg)
    return parts[0], parts[1], parts[2]
