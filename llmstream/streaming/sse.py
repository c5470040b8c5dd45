"""
llmstream - SSE Frame Reader

Slices a Server-Sent-Events byte stream into data payloads.

Framing rules:
- A blank line ends a frame; ``data:`` lines in one frame are joined with "\\n"
- ``event:``, ``id:`` and ``retry:`` lines are ignored
- Lines starting with ":" are comments
- "\\r\\n", "\\r" and "\\n" all end a line
- ``data: [DONE]`` ends the stream
- A trailing frame without a closing blank line is still returned

Payload contents are not interpreted here.
"""

from typing import AsyncIterator, List, Optional

import httpx

from ..core.errors import StreamReadError


DEFAULT_MAX_LINE_SIZE = 1024 * 1024  # 1 MiB
DONE_SENTINEL = "[DONE]"


class SSEFrameReader:
    """
    Lazy frame reader over an open streaming response.

    Usage:
        reader = SSEFrameReader(response)
        while (payload := await reader.next_frame()) is not None:
            handle(payload)
        await reader.aclose()
    """

    def __init__(
        self,
        response: httpx.Response,
        max_line_size: int = DEFAULT_MAX_LINE_SIZE,
        provider: str = "",
    ):
        self._response = response
        self._chunks: Optional[AsyncIterator[bytes]] = None
        self._buffer = b""
        self._eof = False
        self._done = False
        self._closed = False
        self.max_line_size = max_line_size
        self.provider = provider

    @property
    def closed(self) -> bool:
        return self._closed

    async def next_frame(self) -> Optional[str]:
        """
        Return the next data payload, or None at end of stream.

        Raises:
            StreamReadError: the connection failed or a line was too long
        """
        if self._done:
            return None

        data_lines: List[str] = []
        while True:
            line = await self._read_line()

            if line is None:
                self._done = True
                return self._finish_frame(data_lines)

            if line == "":
                if not data_lines:
                    continue
                payload = self._finish_frame(data_lines)
                if payload is None:
                    self._done = True
                return payload

            if line.startswith(":"):
                continue

            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "data":
                data_lines.append(value)

    def _finish_frame(self, data_lines: List[str]) -> Optional[str]:
        if not data_lines:
            return None
        payload = "\n".join(data_lines)
        if payload.strip() == DONE_SENTINEL:
            return None
        return payload

    async def _read_line(self) -> Optional[str]:
        while True:
            line = self._take_line()
            if line is not None:
                return line
            if self._eof:
                if not self._buffer:
                    return None
                rest, self._buffer = self._buffer, b""
                return rest.rstrip(b"\r").decode("utf-8", errors="replace")
            await self._fill()

    def _take_line(self) -> Optional[str]:
        buf = self._buffer
        lf = buf.find(b"\n")
        cr = buf.find(b"\r")

        if cr != -1 and (lf == -1 or cr < lf):
            # A lone "\r" at the end may be the first half of "\r\n"
            if cr + 1 == len(buf) and not self._eof:
                self._check_size(cr)
                return None
            end, skip = cr, (2 if buf[cr + 1:cr + 2] == b"\n" else 1)
        elif lf != -1:
            end, skip = lf, 1
        else:
            self._check_size(len(buf))
            return None

        self._check_size(end)
        line = buf[:end]
        self._buffer = buf[end + skip:]
        return line.decode("utf-8", errors="replace")

    def _check_size(self, size: int) -> None:
        if size > self.max_line_size:
            raise StreamReadError(
                f"line exceeds maximum size of {self.max_line_size} bytes",
                provider=self.provider,
            )

    async def _fill(self) -> None:
        if self._chunks is None:
            self._chunks = self._response.aiter_bytes()
        try:
            chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            self._eof = True
            return
        except (httpx.HTTPError, httpx.StreamError, OSError) as e:
            raise StreamReadError(str(e) or type(e).__name__, provider=self.provider) from e
        self._buffer += chunk

    async def aclose(self) -> None:
        """Release the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._done = True
        await self._response.aclose()
