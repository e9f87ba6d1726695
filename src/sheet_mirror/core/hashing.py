"""Content hashing for comparing destination copies against the source."""

import asyncio
import hashlib
from pathlib import Path
from typing import BinaryIO, Optional, Union


class ContentVerifier:
    """Computes streaming content digests.

    The default is MD5 because Drive's ``md5Checksum`` is the value compared
    against. This is an integrity check, not a security primitive.
    """

    def __init__(self, algorithm: str = "md5", chunk_size: int = 65536):
        hashlib.new(algorithm)  # fail early on unknown algorithms
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def hash(self, stream: BinaryIO) -> str:
        """Hash a binary stream without buffering it whole."""
        digest = hashlib.new(self.algorithm)
        for chunk in iter(lambda: stream.read(self.chunk_size), b""):
            digest.update(chunk)
        return digest.hexdigest()

    def hash_file(self, path: Union[str, Path]) -> str:
        with open(path, "rb") as fh:
            return self.hash(fh)

    async def hash_file_async(self, path: Union[str, Path]) -> str:
        """Hash a file in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hash_file, path)

    @staticmethod
    def matches(digest: Optional[str], expected: Optional[str]) -> bool:
        """Compare two hex digests. A missing digest never matches."""
        if not digest or not expected:
            return False
        return digest.lower() == expected.lower()
