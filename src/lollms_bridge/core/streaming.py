"""Incremental decoders for streamed chat responses.

Servers deliver streamed completions as line-delimited frames, but the
transport may split the bytes anywhere. A decoder keeps the unfinished tail of
the input between chunks and turns each complete line into zero or one text
delta.

Two framings are supported:

* Ollama: newline-delimited JSON objects, the last one carrying ``done: true``.
* Server-Sent Events (OpenAI and Lollms): ``data: <json>`` lines, terminated
  by ``data: [DONE]``.
"""

import codecs
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from lollms_bridge.utils.errors import StreamError

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE_PAYLOAD = "[DONE]"


def _get_path(data: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists, returning None on any missing step."""
    for key in path:
        if isinstance(key, int):
            if not isinstance(data, list) or len(data) <= key:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[key] if isinstance(key, int) else data.get(key)
    return data


def _stream_error(event: dict[str, Any]) -> str | None:
    """Return the error message carried by a stream event, if any."""
    error = event.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or json.dumps(error))
    return str(error)


def extract_delta_text(event: Any) -> str | None:
    """Extract the text delta from an OpenAI-style stream event.

    Fields are tried in order: ``choices[0].delta.content``, ``content``,
    ``message.content``. The first non-empty string wins.
    """
    for path in (("choices", 0, "delta", "content"), ("content",), ("message", "content")):
        value = _get_path(event, *path)
        if isinstance(value, str) and value:
            return value
    return None


class StreamDecoder(ABC):
    """Line-buffered decoder for one streamed response.

    A decoder is single-use: create a new one for every request.

    Attributes:
        buffer: Partial line carried over between chunks.
        text: Concatenation of every delta emitted so far.
        done: True once the server signalled completion.
    """

    def __init__(self):
        self.buffer = ""
        self.text = ""
        self.done = False
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes | str) -> list[str]:
        """Consume a chunk and return the deltas it completes.

        Args:
            chunk: Raw bytes or text, split at an arbitrary point.

        Returns:
            Text deltas, in order. Empty once the stream is done.
        """
        if self.done:
            return []

        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self.buffer += chunk

        lines = self.buffer.split("\n")
        self.buffer = lines.pop()
        return self._process_lines(lines)

    def close(self) -> list[str]:
        """Flush input held back at end of stream.

        Returns:
            Deltas from a final line that had no trailing newline.
        """
        if self.done:
            return []
        tail = self.buffer + self._utf8.decode(b"", final=True)
        self.buffer = ""
        return self._process_lines([tail])

    async def iter_deltas(
        self, chunks: AsyncIterable[bytes | str]
    ) -> AsyncIterator[str]:
        """Lazily decode an async stream of chunks into text deltas.

        Stops reading as soon as the completion signal is seen.
        """
        async for chunk in chunks:
            for delta in self.feed(chunk):
                yield delta
            if self.done:
                return
        for delta in self.close():
            yield delta

    def _process_lines(self, lines: list[str]) -> list[str]:
        deltas = []
        for raw in lines:
            line = raw.strip()
            if not line:
                continue
            delta = self._process_line(line)
            if delta:
                self.text += delta
                deltas.append(delta)
            if self.done:
                break
        return deltas

    @abstractmethod
    def _process_line(self, line: str) -> str | None:
        """Decode one complete, non-empty line.

        Implementations set ``self.done`` when the line ends the stream.
        """


class OllamaStreamDecoder(StreamDecoder):
    """Decoder for Ollama's newline-delimited JSON stream."""

    def _process_line(self, line: str) -> str | None:
        try:
            event = json.loads(line)
        except ValueError:
            logger.warning(f"Skipping unparseable stream line: {line[:200]}")
            return None

        if not isinstance(event, dict):
            logger.warning(f"Skipping non-object stream line: {line[:200]}")
            return None

        error = _stream_error(event)
        if error:
            raise StreamError(error)

        content = _get_path(event, "message", "content")
        if event.get("done") is True:
            self.done = True
        if isinstance(content, str) and content:
            return content
        return None


class SSEStreamDecoder(StreamDecoder):
    """Decoder for OpenAI-compatible Server-Sent Events."""

    def _process_line(self, line: str) -> str | None:
        if line.startswith(SSE_DATA_PREFIX):
            payload = line[len(SSE_DATA_PREFIX):].strip()
            if payload == SSE_DONE_PAYLOAD:
                self.done = True
                return None
        elif line.startswith("{"):
            # Some servers skip the SSE framing and send raw JSON events
            payload = line
        else:
            # event:, id:, retry: and ":" comment lines carry no content
            return None

        try:
            event = json.loads(payload)
        except ValueError:
            logger.warning(f"Skipping unparseable stream data: {payload[:200]}")
            return None

        if isinstance(event, dict):
            error = _stream_error(event)
            if error:
                raise StreamError(error)

        return extract_delta_text(event)
