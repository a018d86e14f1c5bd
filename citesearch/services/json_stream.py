"""Incremental decoder for streamed, pretty-printed JSON arrays.

Some providers stream a response as one top-level JSON array whose
elements arrive over time, e.g.::

    [{
      "candidates": [...]
    }
    ,
    {
      ...
    }]

Chunk boundaries are arbitrary with respect to object boundaries (and to
UTF-8 code points), so neither line splitting nor parsing the whole buffer
works. The decoder keeps its scan state between ``feed`` calls: the text
buffer, how far into it the current object has been scanned, the brace
depth, and the in-string / escape flags. Each call only scans the newly
arrived text.
"""
from __future__ import annotations

import codecs
import json
from typing import Any, Iterator

from citesearch.errors import StreamDecodeError
from citesearch.services.logger import logger

FRAMING_CHARS = "[],"


class JsonArrayStreamDecoder:
    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._scan_pos = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False
        self.skipped_chars = 0

    @property
    def pending(self) -> str:
        """Text received but not yet consumed as a complete object."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> Iterator[dict[str, Any]]:
        """Append a chunk and iterate over every object it completed, in order.

        The chunk is buffered immediately; objects are parsed lazily so a
        malformed element only raises after the ones before it were yielded.
        """
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        if text:
            self._buffer += text
        return self._drain()

    def close(self) -> list[dict[str, Any]]:
        """Flush the byte decoder at end of stream.

        Leftover partial data is logged and dropped; the end of the upstream
        stream is not itself an error.
        """
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._buffer += tail
        objects = list(self._drain())
        leftover = self._buffer.strip()
        if leftover:
            logger.warning(
                "Upstream stream ended with %d unconsumed chars: %r",
                len(leftover),
                leftover[:200],
            )
        self._reset_scan()
        self._buffer = ""
        return objects

    def _reset_scan(self) -> None:
        self._scan_pos = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False

    def _skip_to_object(self) -> bool:
        """Drop framing, whitespace and stray characters before the next ``{``."""
        buffer = self._buffer
        index = 0
        length = len(buffer)
        while index < length:
            char = buffer[index]
            if char == "{":
                break
            if not (char.isspace() or char in FRAMING_CHARS):
                self.skipped_chars += 1
                logger.debug("Skipping unexpected character %r in upstream stream", char)
            index += 1
        self._buffer = buffer[index:]
        return bool(self._buffer)

    def _scan_object_end(self) -> int:
        """Continue scanning the object at the buffer front.

        Returns the index one past its closing brace, or -1 if the object is
        still incomplete. Scan state persists so a later call resumes where
        this one stopped.
        """
        buffer = self._buffer
        for index in range(self._scan_pos, len(buffer)):
            char = buffer[index]
            if self._escaped:
                self._escaped = False
                continue
            if char == "\\":
                self._escaped = True
                continue
            if char == '"':
                self._in_string = not self._in_string
                continue
            if self._in_string:
                continue
            if char == "{":
                self._depth += 1
            elif char == "}":
                self._depth -= 1
                if self._depth == 0:
                    return index + 1
        self._scan_pos = len(buffer)
        return -1

    def _drain(self) -> Iterator[dict[str, Any]]:
        while True:
            if self._scan_pos == 0 and not self._skip_to_object():
                return

            end = self._scan_object_end()
            if end < 0:
                return

            raw_object = self._buffer[:end]
            self._buffer = self._buffer[end:]
            self._reset_scan()

            try:
                parsed = json.loads(raw_object)
            except json.JSONDecodeError as e:
                raise StreamDecodeError(
                    "Failed to parse streamed JSON object",
                    details=f"{e}: {raw_object[:200]}",
                ) from e
            yield parsed
