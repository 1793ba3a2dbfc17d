"""In-memory representation of a workbook's zip package."""

from __future__ import annotations

import io
import zipfile
from typing import Dict, List, Optional

from .errors import ArchiveLoadError

DEFAULT_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class ArchivePackage:
    """Named parts of a zip container, kept in archive order.

    Parts can be read and replaced but never removed. Serialising the same
    contents always produces the same bytes.
    """

    COMPRESSION = zipfile.ZIP_DEFLATED
    COMPRESS_LEVEL = 6

    def __init__(self) -> None:
        self._order: List[str] = []
        self._contents: Dict[str, bytes] = {}
        self._infos: Dict[str, zipfile.ZipInfo] = {}

    @classmethod
    def load(cls, data: bytes) -> "ArchivePackage":
        """Read a package from raw bytes."""

        package = cls()
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist():
                    package._add(info.filename, archive.read(info), info)
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise ArchiveLoadError(
                f"The file is not a valid workbook package ({exc})."
            ) from exc
        except (EOFError, OSError, ValueError) as exc:
            raise ArchiveLoadError(
                f"The workbook package could not be read ({exc})."
            ) from exc

        if not package._order:
            raise ArchiveLoadError("The workbook package contains no parts.")
        return package

    def _add(self, name: str, content: bytes, info: zipfile.ZipInfo) -> None:
        if name not in self._contents:
            self._order.append(name)
        self._contents[name] = content
        self._infos[name] = info

    def names(self) -> List[str]:
        """Return part names in archive order."""

        return list(self._order)

    def __contains__(self, name: object) -> bool:
        return name in self._contents

    def part_bytes(self, name: str) -> Optional[bytes]:
        return self._contents.get(name)

    def part(self, name: str) -> Optional[str]:
        """Return the decoded text of a part, or None when absent or binary."""

        content = self._contents.get(name)
        if content is None:
            return None
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError:
            return None

    def set_part(self, name: str, content: str | bytes) -> None:
        """Replace a part, inserting it at the end when it does not exist."""

        if isinstance(content, str):
            content = content.encode("utf-8")
        info = self._infos.get(name) or zipfile.ZipInfo(name, date_time=DEFAULT_DATE_TIME)
        self._add(name, content, info)

    def copy(self) -> "ArchivePackage":
        clone = ArchivePackage()
        clone._order = list(self._order)
        clone._contents = dict(self._contents)
        clone._infos = dict(self._infos)
        return clone

    def serialize(self) -> bytes:
        """Write all parts back into a zip archive."""

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for name in self._order:
                source = self._infos[name]
                info = zipfile.ZipInfo(name, date_time=source.date_time)
                info.external_attr = source.external_attr
                info.compress_type = self.COMPRESSION
                archive.writestr(
                    info,
                    self._contents[name],
                    compress_type=self.COMPRESSION,
                    compresslevel=self.COMPRESS_LEVEL,
                )
        return buffer.getvalue()
