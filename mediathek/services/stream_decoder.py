"""
Streaming xz decompression

Decodes the compressed catalog chunk by chunk while it is being downloaded,
so decoding overlaps the transfer. Only a fixed-size scratch step is used per
decode call; decoded output accumulates until the sync consumes it.
"""
import logging
import lzma

from mediathek.exceptions import DecodeError


logger = logging.getLogger(__name__)

SCRATCH_SIZE = 64 * 1024


class StreamDecoder:
    """
    Incremental decoder for one compressed catalog transfer.

    A decode failure poisons the instance: every later call raises DecodeError
    and the caller has to start over with a new decoder.
    """

    def __init__(self):
        # No memory limit; streams without an integrity check are accepted.
        self._decompressor = lzma.LZMADecompressor(format=lzma.FORMAT_XZ)
        self._output = bytearray()
        self._failed: str | None = None
        self._consumed = 0
        self._ignored = 0

    @property
    def eof(self) -> bool:
        return self._decompressor.eof

    @property
    def consumed(self) -> int:
        """Number of compressed bytes fed so far"""
        return self._consumed

    def feed(self, chunk: bytes) -> None:
        """
        Decode one chunk of compressed input.

        Args:
            chunk: Compressed bytes of any size

        Raises:
            DecodeError: If the data is corrupt or the decoder already failed
        """
        self._ensure_usable()
        self._consumed += len(chunk)

        if self._decompressor.eof:
            self._ignore_trailing(chunk)
            return

        data = bytes(chunk)
        try:
            while True:
                decoded = self._decompressor.decompress(data, max_length=SCRATCH_SIZE)
                self._output += decoded
                data = b""

                if self._decompressor.eof:
                    self._ignore_trailing(self._decompressor.unused_data)
                    return

                if self._decompressor.needs_input:
                    return
        except lzma.LZMAError as exc:
            self._fail(f"Corrupt compressed stream: {exc}")

    def finish(self) -> bytearray:
        """
        Check that the stream ended cleanly and hand over the decoded output.

        The buffer is returned without copying; the decoder holds no output
        afterwards.

        Raises:
            DecodeError: If the stream ended before its end marker
        """
        self._ensure_usable()
        if not self._decompressor.eof:
            self._fail(
                f"Compressed stream ended unexpectedly after {self._consumed} bytes"
            )
        decoded, self._output = self._output, bytearray()
        return decoded

    def output(self) -> bytes:
        """All bytes decoded so far"""
        return bytes(self._output)

    def __len__(self) -> int:
        return len(self._output)

    def _ignore_trailing(self, data: bytes) -> None:
        if data:
            self._ignored += len(data)
            logger.debug("Ignoring %s bytes after end of compressed stream", self._ignored)

    def _ensure_usable(self) -> None:
        if self._failed is not None:
            raise DecodeError(f"Decoder is no longer usable: {self._failed}")

    def _fail(self, reason: str) -> None:
        self._failed = reason
        logger.error("Decoding failed: %s", reason)
        raise DecodeError(reason)
