"""
Runbook document sources

A document source lists the runbooks in a bucket and fetches their text.
The local implementation treats each bucket as a directory of markdown
files.
"""

import logging
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .errors import ValidationError

logger = logging.getLogger(__name__)

RUNBOOK_SUFFIX = ".md"


@runtime_checkable
class DocumentSource(Protocol):
    async def list_documents(self, bucket: str) -> list[str]: ...

    async def get_document_content(self, bucket: str, path: str) -> Optional[str]: ...


class LocalDirectoryDocumentSource:
    """
    Serves runbooks from the local filesystem

    ``<root_dir>/<bucket>/**/*.md``; document paths are relative to the
    bucket directory and use forward slashes.
    """

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir)

    def _bucket_dir(self, bucket: str) -> Path:
        if not bucket or not bucket.strip():
            raise ValidationError("bucket cannot be empty")
        return self.root_dir / bucket

    def _resolve(self, bucket: str, path: str) -> Path:
        bucket_dir = self._bucket_dir(bucket).resolve()
        target = (bucket_dir / path).resolve()
        if bucket_dir != target and bucket_dir not in target.parents:
            raise ValidationError(f"Document path escapes bucket '{bucket}': {path}")
        return target

    async def list_documents(self, bucket: str) -> list[str]:
        bucket_dir = self._bucket_dir(bucket)
        if not bucket_dir.is_dir():
            logger.warning(f"Runbook bucket directory not found: {bucket_dir}")
            return []
        return sorted(
            p.relative_to(bucket_dir).as_posix()
            for p in bucket_dir.rglob(f"*{RUNBOOK_SUFFIX}")
            if p.is_file()
        )

    async def get_document_content(self, bucket: str, path: str) -> Optional[str]:
        if not path:
            raise ValidationError("path cannot be empty")
        target = self._resolve(bucket, path)
        if not target.is_file():
            logger.debug(f"Runbook not found: {bucket}/{path}")
            return None
        with open(target, encoding="utf-8") as f:
            return f.read()
