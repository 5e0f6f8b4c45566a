"""
Payload Codec

Reversible zlib compression applied to response payloads and to SET
values, plus the hex encoding SET values travel in on the wire.

Every server response is a complete zlib stream. zlib streams carry
their own end marker, so a client can tell where a response ends by
feeding bytes to a ResponseDecoder until it reports completion.
"""

import binascii
import zlib
from typing import Optional, Union

from ..config.settings import settings


def compress(data: Union[str, bytes], level: Optional[int] = None) -> bytes:
    """
    Compress a payload into a single zlib stream.

    Args:
        data: Text (encoded as UTF-8) or bytes to compress
        level: zlib compression level (default from settings)

    Returns:
        The compressed bytes
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    if level is None:
        level = settings.COMPRESSION_LEVEL
    return zlib.compress(data, level)


def decompress(data: bytes) -> bytes:
    """
    Decompress one complete zlib stream.

    Raises:
        ValueError: If the data is not a valid, complete zlib stream
    """
    try:
        return zlib.decompress(data)
    except zlib.error as exc:
        raise ValueError(f"invalid compressed payload: {exc}") from exc


def encode_value(value: Union[str, bytes]) -> str:
    """
    Prepare a SET value for the wire: compress, then hex-encode.

    Example:
        >>> decompress(bytes.fromhex(encode_value("red")))
        b'red'
    """
    return compress(value).hex()


def decode_value(text: str) -> Optional[bytes]:
    """
    Decode the hex argument of a SET command.

    Returns:
        The decoded bytes, or None if the text is not valid hex
    """
    try:
        return binascii.unhexlify(text)
    except (binascii.Error, ValueError):
        return None


class ResponseDecoder:
    """
    Incremental decoder for one server response.

    Usage:
        decoder = ResponseDecoder()
        while not decoder.feed(sock.recv(512)):
            pass
        text = decoder.result.decode()

    Attributes:
        result: Decompressed bytes produced so far
        unused_data: Bytes received after the end of the stream
    """

    def __init__(self):
        self._decompressor = zlib.decompressobj()
        self.result = b""

    @property
    def done(self) -> bool:
        return self._decompressor.eof

    @property
    def unused_data(self) -> bytes:
        return self._decompressor.unused_data

    def feed(self, chunk: bytes) -> bool:
        """
        Feed received bytes into the decoder.

        Returns:
            True once the complete response has been received

        Raises:
            ValueError: If the bytes are not a valid zlib stream
        """
        try:
            self.result += self._decompressor.decompress(chunk)
        except zlib.error as exc:
            raise ValueError(f"invalid compressed payload: {exc}") from exc
        return self._decompressor.eof
