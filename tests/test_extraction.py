from __future__ import annotations

import pytest

from sheetwarp.batching import contains_japanese
from sheetwarp.extraction import TextExtractor
from sheetwarp.package import ArchivePackage
from tests.workbooks import (
    broken_sheet_xml,
    build_package,
    full_package,
    plain_si,
    scenario_package,
    shared_strings_xml,
    sheet_xml,
    workbook_xml,
)


@pytest.mark.parametrize("text", ["Sheet1", "123", "Total: 42", "", "  "])
def test_script_filter_rejects_text_without_japanese(text: str) -> None:
    assert not contains_japanese(text)


@pytest.mark.parametrize("text", ["設計書", "合計: 42", "ｶﾀｶﾅ", "ひらがな", "「注」"])
def test_script_filter_accepts_japanese_text(text: str) -> None:
    assert contains_japanese(text)


def test_scenario_extracts_shared_string_and_sheet_name_only() -> None:
    result = TextExtractor().extract(ArchivePackage.load(scenario_package()))

    assert result.strings == ["こんにちは", "シート1"]
    assert result.occurrences == 3


def test_strings_follow_traversal_order_and_are_unique() -> None:
    result = TextExtractor().extract(ArchivePackage.load(full_package()))

    assert result.strings == [
        "概要",
        "合計: 42",
        "備考",
        "注意事項",
        "売上推移",
        "設計書",
    ]
    assert len(result.strings) <= result.candidates <= result.occurrences


def test_shared_string_runs_are_joined_without_phonetic_guides() -> None:
    data = build_package(
        {
            "xl/sharedStrings.xml": shared_strings_xml(
                "<r><t>基本</t></r><r><t xml:space=\"preserve\"> 設計</t></r>"
                "<rPh sb=\"0\" eb=\"2\"><t>キホン</t></rPh>"
                "<phoneticPr fontId=\"1\"/>",
            ),
        }
    )

    result = TextExtractor().extract(ArchivePackage.load(data))

    assert result.strings == ["基本 設計"]


def test_entities_are_decoded() -> None:
    data = build_package(
        {
            "xl/sharedStrings.xml": shared_strings_xml("<t>入力 &lt;必須&gt; &amp; 確認</t>"),
            "xl/workbook.xml": workbook_xml("A&B 一覧"),
        }
    )

    result = TextExtractor().extract(ArchivePackage.load(data))

    assert result.strings == ["入力 <必須> & 確認", "A&B 一覧"]


def test_empty_shared_string_block_is_dropped() -> None:
    data = build_package(
        {"xl/sharedStrings.xml": shared_strings_xml("<phoneticPr fontId=\"1\"/>", plain_si("値"))}
    )

    result = TextExtractor().extract(ArchivePackage.load(data))

    assert result.strings == ["値"]
    assert result.occurrences == 2


def test_unreadable_part_is_skipped_without_failing() -> None:
    data = build_package(
        {
            "xl/sharedStrings.xml": b"",
            "xl/worksheets/sheet1.xml": sheet_xml("正常"),
        }
    )

    result = TextExtractor().extract(ArchivePackage.load(data))

    assert result.strings == ["正常"]
    assert result.parts_scanned == 1


def test_part_name_patterns_are_exact() -> None:
    data = build_package(
        {
            "xl/worksheets/_rels/sheet1.xml.rels": sheet_xml("関係"),
            "XL/worksheets/sheet1.xml": sheet_xml("大文字"),
            "xl/worksheets/sheet1.xml": sheet_xml("本物"),
        }
    )

    result = TextExtractor().extract(ArchivePackage.load(data))

    assert result.strings == ["本物"]


def test_custom_predicate_can_admit_every_candidate() -> None:
    result = TextExtractor(predicate=bool).extract(ArchivePackage.load(scenario_package()))

    assert result.strings == ["こんにちは", "World", "シート1"]


def test_broken_node_does_not_hide_the_rest_of_the_part() -> None:
    data = build_package({"xl/worksheets/sheet1.xml": broken_sheet_xml()})

    result = TextExtractor().extract(ArchivePackage.load(data))

    assert "備考" in result.strings
    assert result.parts_scanned == 1
