import glob
import logging
from pathlib import Path
from typing import Optional

from fleetready.core.errors import FormatError
from fleetready.jobs.ingest.registry import format_for_path, get_format
from fleetready.jobs.ingest.sources.base import BaseSource
from fleetready.jobs.ingest.types import SourcePayload

logger = logging.getLogger(__name__)


class FileSource(BaseSource):
    """
    Vendor drop files on local disk (SFTP landing directory, manual exports).
    The feed name defaults to the parent directory, so each vendor's drop
    folder is its own source.
    """

    name = "file"

    def fetch(
        self,
        paths: list[str],
        format_tag: Optional[str] = None,
        feed: Optional[str] = None,
        encoding: str = "utf-8",
    ) -> list[SourcePayload]:
        files: list[Path] = []
        for pattern in paths:
            matches = sorted(glob.glob(pattern)) or [pattern]
            files.extend(Path(m) for m in matches)

        payloads: list[SourcePayload] = []
        for path in files:
            if not path.is_file():
                raise FileNotFoundError(str(path))
            tag = format_tag or format_for_path(path.name)
            if tag is None:
                raise FormatError(f"Cannot infer format for {path}; pass --format", format_tag=None)
            get_format(tag)

            body = path.read_text(encoding=encoding)
            source = feed or path.parent.name or "file"
            logger.info("Read %s (%d bytes) as %s for feed %s", path, len(body), tag, source)
            payloads.append(SourcePayload(source=source, format_tag=tag, body=body, origin=str(path)))
        return payloads
