from __future__ import annotations

import io
import zipfile

import pytest

from sheetwarp.errors import ArchiveLoadError
from sheetwarp.package import ArchivePackage
from tests.workbooks import full_package, read_parts


def test_load_rejects_bytes_that_are_not_a_zip() -> None:
    with pytest.raises(ArchiveLoadError):
        ArchivePackage.load(b"definitely not a workbook")


def test_load_rejects_empty_archive() -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w"):
        pass
    with pytest.raises(ArchiveLoadError):
        ArchivePackage.load(buffer.getvalue())


def test_load_rejects_truncated_archive() -> None:
    data = full_package()
    with pytest.raises(ArchiveLoadError):
        ArchivePackage.load(data[: len(data) // 2])


def test_parts_are_exposed_in_archive_order() -> None:
    package = ArchivePackage.load(full_package())

    names = package.names()
    assert names[0] == "[Content_Types].xml"
    assert names.index("xl/workbook.xml") < names.index("xl/charts/chart1.xml")
    assert "設計書" in package.part("xl/workbook.xml")
    assert package.part("xl/missing.xml") is None
    assert package.part("xl/media/image1.png") is None
    assert package.part_bytes("xl/media/image1.png").startswith(b"\x89PNG")
    assert "xl/missing.xml" not in package


def test_set_part_replaces_existing_and_appends_new_parts() -> None:
    package = ArchivePackage.load(full_package())
    original_names = package.names()

    package.set_part("xl/workbook.xml", "<workbook/>")
    package.set_part("xl/extra.xml", b"<extra/>")

    assert package.part("xl/workbook.xml") == "<workbook/>"
    assert package.names() == original_names + ["xl/extra.xml"]


def test_serialize_round_trips_every_part_including_binary() -> None:
    data = full_package()
    package = ArchivePackage.load(data)

    rebuilt = read_parts(package.serialize())

    assert rebuilt == read_parts(data)
    assert rebuilt["xl/media/image1.png"].startswith(b"\x89PNG")


def test_serialize_is_deterministic() -> None:
    package = ArchivePackage.load(full_package())
    package.set_part("xl/new.xml", "<new/>")

    assert package.serialize() == package.serialize()
    assert ArchivePackage.load(package.serialize()).serialize() == package.serialize()


def test_copy_is_independent() -> None:
    package = ArchivePackage.load(full_package())
    clone = package.copy()

    clone.set_part("xl/workbook.xml", "<changed/>")

    assert package.part("xl/workbook.xml") != "<changed/>"
