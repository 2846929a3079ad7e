from __future__ import annotations

from typing import List

from pydantic import BaseModel, ValidationError

from vaultproxy.schemas import decode_event


class EventDecoder:
    """
    Incremental NDJSON decoder.

    Network reads may split an envelope anywhere (even inside a multi-byte
    character), so bytes are buffered and only newline-terminated lines are
    parsed. Malformed envelopes are dropped one at a time.
    """

    def __init__(self) -> None:
        self._buffer = b""
        self.dropped = 0

    def feed(self, chunk: bytes) -> List[BaseModel]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(b"\n")
        return self._decode_lines(lines)

    def flush(self) -> List[BaseModel]:
        """Decode a trailing line that arrived without its newline."""
        rest, self._buffer = self._buffer, b""
        return self._decode_lines([rest])

    def _decode_lines(self, lines: List[bytes]) -> List[BaseModel]:
        out: List[BaseModel] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                out.append(decode_event(line))
            except ValidationError:
                self.dropped += 1
        return out
