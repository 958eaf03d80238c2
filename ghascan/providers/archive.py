"""
archive.py - Action and workflow files from a repository tarball

GitHub serves repository archives as gzipped tarballs with every path below a
single ``<owner>-<repo>-<sha>/`` directory. Only files that look like action
definitions or workflows are kept.
"""

import io
import re
import tarfile
from typing import BinaryIO, Dict, Iterable, Union

from ..core.errors import ParseError, SizeLimitExceeded

GITHUB_ACTIONS_FILE_REGEX = re.compile(
    r"^(\.github/(actions/.*/action[.]ya?ml|workflows/.*[.]ya?ml)|(.*/)?action[.]ya?ml)$"
)

DEFAULT_MAX_ARCHIVE_BYTES = 1024 * 1024 * 1024


def is_action_path(path: str) -> bool:
    """Check whether a repository-relative path is an action or workflow file"""
    return GITHUB_ACTIONS_FILE_REGEX.match(path) is not None


def strip_archive_root(name: str) -> str:
    """Drop the leading ``<owner>-<repo>-<sha>/`` component of an archive member"""
    return "/".join(name.split("/")[1:])


def read_limited(chunks: Iterable[bytes], max_bytes: int = DEFAULT_MAX_ARCHIVE_BYTES) -> bytes:
    """
    Join downloaded chunks, refusing archives larger than ``max_bytes``

    Raises:
        SizeLimitExceeded: As soon as the running total reaches the limit
    """
    buffer = io.BytesIO()
    total = 0
    for chunk in chunks:
        total += len(chunk)
        if total >= max_bytes:
            raise SizeLimitExceeded(f"Archive exceeds {max_bytes} bytes")
        buffer.write(chunk)
    return buffer.getvalue()


def extract_action_files(archive: Union[bytes, BinaryIO]) -> Dict[str, str]:
    """
    Read action and workflow files out of a gzipped tarball

    Args:
        archive: Archive bytes or a binary file object

    Returns:
        Mapping of repository-relative path to file text

    Raises:
        ParseError: If the archive is not a readable tarball
    """
    fileobj = io.BytesIO(archive) if isinstance(archive, bytes) else archive
    files: Dict[str, str] = {}

    try:
        with tarfile.open(fileobj=fileobj, mode="r:*") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                relname = strip_archive_root(member.name)
                if not is_action_path(relname):
                    continue
                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                files[relname] = extracted.read().decode("utf-8", errors="replace")
    except tarfile.TarError as e:
        raise ParseError(f"Unreadable archive: {e}") from e

    return files
