"""SHA-256 checksum files for snapshot documents and other artifacts.

Each checked file ``x`` gets a sibling ``x.sha256`` holding only the hex
digest, the same layout ``sha256sum x | awk '{print $1}' > x.sha256`` writes.
"""

import fnmatch
import hashlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

CHECKSUM_SUFFIX = ".sha256"
CHUNK_SIZE = 1024 * 1024


class ChecksumStatus(str, Enum):
    OK = "ok"
    MISSING = "missing"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class ChecksumResult:
    path: Path
    status: ChecksumStatus

    @property
    def ok(self) -> bool:
        return self.status is ChecksumStatus.OK

    def describe(self) -> str:
        if self.ok:
            return f"[OK] {self.path}"
        if self.status is ChecksumStatus.MISSING:
            return f"[ERR] {self.path} - checksum file missing"
        return f"[ERR] {self.path} - checksum mismatch"


def file_digest(path: Union[str, Path]) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def checksum_path(path: Path) -> Path:
    return path.with_name(path.name + CHECKSUM_SUFFIX)


def find_files(root: Union[str, Path], pattern: str = "*.json", exclude: Optional[str] = None) -> List[Path]:
    """Files under ``root`` matching ``pattern``, minus those matching ``exclude``."""
    root = Path(root)
    if exclude and exclude.startswith("./"):
        exclude = exclude[2:]
    files = []
    for path in sorted(root.rglob(pattern)):
        if not path.is_file() or path.name.endswith(CHECKSUM_SUFFIX):
            continue
        relative = path.relative_to(root).as_posix()
        if exclude and fnmatch.fnmatch(relative, exclude):
            continue
        files.append(path)
    return files


def generate_checksums(files: Iterable[Path]) -> List[Path]:
    written = []
    for path in files:
        target = checksum_path(path)
        target.write_text(file_digest(path) + "\n", encoding="utf-8")
        logger.debug("Wrote checksum", file=str(path))
        written.append(target)
    return written


def verify_checksums(files: Iterable[Path]) -> List[ChecksumResult]:
    results = []
    for path in files:
        target = checksum_path(path)
        if not target.is_file():
            results.append(ChecksumResult(path, ChecksumStatus.MISSING))
            continue
        expected = target.read_text(encoding="utf-8").split()
        status = ChecksumStatus.OK if expected and expected[0] == file_digest(path) else ChecksumStatus.MISMATCH
        results.append(ChecksumResult(path, status))
    return results
