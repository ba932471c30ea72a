"""Incremental decoder for ``text/event-stream`` response bodies.

The upstream streams event blocks separated by a blank line; each block has
one or more ``data: <payload>`` lines. Text arrives in arbitrary chunks, so
the decoder buffers until a complete block is available.
"""

from __future__ import annotations

DONE_SENTINEL = "[DONE]"


class SSEDecoder:
    """Buffer text chunks and yield ``data:`` payloads as blocks complete.

    Usage::

        decoder = SSEDecoder()
        async for text in response.aiter_text():
            for payload in decoder.feed(text):
                ...
        for payload in decoder.flush():
            ...

    The ``[DONE]`` sentinel is swallowed and sets ``done``; nothing after it
    is returned.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self.done = False

    def feed(self, chunk: str) -> list[str]:
        if self.done:
            return []
        self._buffer += chunk.replace("\r\n", "\n")

        payloads: list[str] = []
        while not self.done:
            index = self._buffer.find("\n\n")
            if index == -1:
                break
            block = self._buffer[:index]
            self._buffer = self._buffer[index + 2 :]
            payloads.extend(self._parse_block(block))
        return payloads

    def flush(self) -> list[str]:
        """Drain a trailing block that was not followed by a blank line."""
        if self.done or not self._buffer.strip():
            self._buffer = ""
            return []
        block, self._buffer = self._buffer, ""
        return self._parse_block(block)

    def _parse_block(self, block: str) -> list[str]:
        payloads: list[str] = []
        for raw_line in block.split("\n"):
            line = raw_line.strip()
            if not line.startswith("data:"):
                continue
            data = line[len("data:") :].strip()
            if not data:
                continue
            if data == DONE_SENTINEL:
                self.done = True
                break
            payloads.append(data)
        return payloads
