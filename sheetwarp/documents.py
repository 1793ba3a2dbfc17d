"""Workbook part parsing and text-node visitors.

Each handler knows which package parts it applies to and how to find the
text-bearing nodes inside them. Extraction and rehydration walk the exact same
occurrences, so a string that was extracted is always found again when
translations are written back.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Sequence, Tuple

from lxml import etree

from .package import ArchivePackage
from .structures import ExtractionRule, TextOccurrence, TextSetter

logger = logging.getLogger(__name__)

SPREADSHEET_NAMESPACES = (
    "http://schemas.openxmlformats.org/spreadsheetml/2006/main",
    "http://purl.oclc.org/ooxml/spreadsheetml/main",
)
DRAWING_NAMESPACES = (
    "http://schemas.openxmlformats.org/drawingml/2006/main",
    "http://purl.oclc.org/ooxml/drawingml/main",
)
XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"

SHEET_NAME_LIMIT = 31
FORBIDDEN_SHEET_CHARS = re.compile(r"[\\/?*\[\]:]")


def _qualified(namespaces: Sequence[str], local: str) -> Tuple[str, ...]:
    return tuple(f"{{{namespace}}}{local}" for namespace in namespaces)


SML_SI = _qualified(SPREADSHEET_NAMESPACES, "si")
SML_T = _qualified(SPREADSHEET_NAMESPACES, "t")
SML_RPH = _qualified(SPREADSHEET_NAMESPACES, "rPh")
SML_SHEETS = _qualified(SPREADSHEET_NAMESPACES, "sheets")
SML_SHEET = _qualified(SPREADSHEET_NAMESPACES, "sheet")
DML_T = _qualified(DRAWING_NAMESPACES, "t")


def sanitise_sheet_name(name: str) -> str:
    """Make a translated sheet name acceptable to spreadsheet applications."""

    return FORBIDDEN_SHEET_CHARS.sub("_", name)[:SHEET_NAME_LIMIT]


def _needs_preserve(text: str) -> bool:
    return bool(text) and (text[0].isspace() or text[-1].isspace())


def parse_part(data: bytes) -> Optional[etree._Element]:
    """Parse part content, recovering from broken nodes where possible.

    Returns None only when nothing usable can be recovered. Extraction and
    rehydration both parse through here, so they see the same repaired tree.
    """

    parser = etree.XMLParser(
        recover=True,
        resolve_entities=False,
        no_network=True,
        remove_blank_text=False,
        huge_tree=True,
    )
    try:
        root = etree.fromstring(data, parser)
    except etree.XMLSyntaxError:
        return None
    if parser.error_log:
        logger.debug("Recovered from XML errors: %s", parser.error_log.last_error)
    return root


def serialise_part(root: etree._Element) -> bytes:
    """Serialise a parsed part, keeping its XML declaration."""

    tree = root.getroottree()
    return etree.tostring(
        tree,
        xml_declaration=True,
        encoding=tree.docinfo.encoding or "UTF-8",
        standalone=tree.docinfo.standalone,
    )


def _has_ancestor(element: etree._Element, tags: Sequence[str], stop: etree._Element) -> bool:
    parent = element.getparent()
    while parent is not None and parent is not stop:
        if parent.tag in tags:
            return True
        parent = parent.getparent()
    return False


class PartHandler(ABC):
    """Base class for the text rules applied to one family of parts."""

    rule: ExtractionRule
    pattern: re.Pattern[str]

    def matches(self, part_name: str) -> bool:
        return self.pattern.fullmatch(part_name) is not None

    def part_names(self, package: ArchivePackage) -> List[str]:
        return [name for name in package.names() if self.matches(name)]

    @abstractmethod
    def occurrences(self, part_name: str, root: etree._Element) -> List[TextOccurrence]:
        """Return the text occurrences found in a parsed part."""


class SharedStringsHandler(PartHandler):
    """One candidate per ``<si>`` block of the shared-string table."""

    rule = ExtractionRule.SHARED_STRING
    pattern = re.compile(r"xl/sharedStrings\.xml")

    def occurrences(self, part_name: str, root: etree._Element) -> List[TextOccurrence]:
        found: List[TextOccurrence] = []
        for item in root.iter(*SML_SI):
            found.append(
                TextOccurrence(
                    part_name=part_name,
                    rule=self.rule,
                    node=item,
                    text=self.item_text(item),
                    setter=self._setter(item),
                )
            )
        return found

    @staticmethod
    def item_text(item: etree._Element) -> str:
        """Concatenate the text runs of a block, ignoring phonetic guides."""

        pieces: List[str] = []
        for text_node in item.iter(*SML_T):
            if _has_ancestor(text_node, SML_RPH, item):
                continue
            pieces.append(text_node.text or "")
        return "".join(pieces)

    @staticmethod
    def _setter(item: etree._Element) -> TextSetter:
        def _replace(translated: str) -> None:
            namespace = etree.QName(item).namespace
            for child in list(item):
                item.remove(child)
            item.text = None
            text_node = etree.SubElement(item, f"{{{namespace}}}t")
            text_node.text = translated
            if _needs_preserve(translated):
                text_node.set(XML_SPACE, "preserve")

        return _replace


class InlineStringHandler(PartHandler):
    """Every inline ``<t>`` node of a worksheet is its own candidate."""

    rule = ExtractionRule.INLINE_STRING
    pattern = re.compile(r"xl/worksheets/sheet[^/]*\.xml")

    def occurrences(self, part_name: str, root: etree._Element) -> List[TextOccurrence]:
        found: List[TextOccurrence] = []
        for text_node in root.iter(*SML_T):
            if _has_ancestor(text_node, SML_RPH, root):
                continue
            found.append(
                TextOccurrence(
                    part_name=part_name,
                    rule=self.rule,
                    node=text_node,
                    text=text_node.text or "",
                    setter=_text_setter(text_node, preserve_space=True),
                )
            )
        return found


class DrawingTextHandler(PartHandler):
    """DrawingML ``<a:t>`` runs, shared by drawings and charts."""

    def __init__(self, rule: ExtractionRule, pattern: str) -> None:
        self.rule = rule
        self.pattern = re.compile(pattern)

    def occurrences(self, part_name: str, root: etree._Element) -> List[TextOccurrence]:
        return [
            TextOccurrence(
                part_name=part_name,
                rule=self.rule,
                node=text_node,
                text=text_node.text or "",
                setter=_text_setter(text_node, preserve_space=False),
            )
            for text_node in root.iter(*DML_T)
        ]


class SheetNameHandler(PartHandler):
    """The ``name`` attribute of each sheet declared in the workbook."""

    rule = ExtractionRule.SHEET_NAME
    pattern = re.compile(r"xl/workbook\.xml")

    def occurrences(self, part_name: str, root: etree._Element) -> List[TextOccurrence]:
        found: List[TextOccurrence] = []
        for sheets in root.iter(*SML_SHEETS):
            for sheet in sheets:
                if sheet.tag not in SML_SHEET:
                    continue
                name = sheet.get("name")
                if name is None:
                    continue
                found.append(
                    TextOccurrence(
                        part_name=part_name,
                        rule=self.rule,
                        node=sheet,
                        text=name,
                        setter=self._setter(sheet),
                    )
                )
        return found

    @staticmethod
    def _setter(sheet: etree._Element) -> TextSetter:
        def _rename(translated: str) -> None:
            sheet.set("name", sanitise_sheet_name(translated))

        return _rename


def _text_setter(text_node: etree._Element, *, preserve_space: bool) -> TextSetter:
    def _set(translated: str) -> None:
        text_node.text = translated
        # DrawingML runs have no xml:space attribute in their schema.
        if preserve_space and _needs_preserve(translated):
            text_node.set(XML_SPACE, "preserve")

    return _set


def default_handlers() -> List[PartHandler]:
    """Handlers in the order their parts are traversed."""

    return [
        SharedStringsHandler(),
        InlineStringHandler(),
        DrawingTextHandler(ExtractionRule.DRAWING_TEXT, r"xl/drawings/drawing[^/]*\.xml"),
        DrawingTextHandler(ExtractionRule.CHART_TEXT, r"xl/charts/chart[^/]*\.xml"),
        SheetNameHandler(),
    ]


def iter_parts(
    package: ArchivePackage,
    handlers: Sequence[PartHandler],
) -> Iterator[Tuple[str, etree._Element, List[TextOccurrence]]]:
    """Yield each recognised, parseable part with its text occurrences."""

    for handler in handlers:
        for part_name in handler.part_names(package):
            content = package.part_bytes(part_name)
            if content is None:
                continue
            root = parse_part(content)
            if root is None:
                logger.warning("Skipping %s: the part contains no recoverable XML.", part_name)
                continue
            yield part_name, root, handler.occurrences(part_name, root)
