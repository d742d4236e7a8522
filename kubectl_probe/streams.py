"""Helpers for newline-delimited JSON streams."""

from collections.abc import AsyncIterable, AsyncIterator, Sequence


async def iter_line_batches(
    chunks: AsyncIterable[bytes],
) -> AsyncIterator[Sequence[bytes]]:
    """Split a chunked byte stream into batches of complete, non-blank lines.

    Each batch holds the lines completed by one chunk, so events that arrive
    together are handed to the caller together. A trailing line without a
    newline is emitted when the stream ends.
    """
    buffer = b""
    async for chunk in chunks:
        buffer += chunk
        *lines, buffer = buffer.split(b"\n")
        if batch := [line for line in lines if line.strip()]:
            yield batch

    if buffer.strip():
        yield [buffer]
