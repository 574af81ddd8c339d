#!/usr/bin/env python3

r"""
Convert Bible provider markup to a unified chapter document.

Notes:
   * the recognized style classes are the ones used by the NLT API html
     export. Other editions can be supported by extending CLASSROLES, either
     in code or with a config file (see h2uconf.py).

   * verse text is built by removing structural elements from a copy of each
     verse's tree and taking the text that is left. Verse numbers, footnotes,
     headings and the like are never stripped from text by pattern matching.

   * some responses have unbalanced paragraph tags. repair() closes them
     before the markup is parsed so one verse can't swallow the next.

   * when no verse_export elements are found in the parsed tree, the verses
     are located with a regular expression instead and each one is parsed on
     its own. The result is marked with parse_mode "fallback".

   * markup with no verse_export elements at all (the ESV API html) is split
     at its verse number elements instead. A verse runs from its number to
     the next one. The result is marked with parse_mode "markers".

   * parsejson() handles the JSON chapter format of the standard Bible API
     (paragraphs of items with USFM style names). Its result is marked with
     parse_mode "json".

   * parseflat() handles flat text with verse numbers run into the verse
     text (1In the beginning...2The earth...). It only finds verse numbers
     and text. No poetry, speakers, or footnotes.

   * interlude markers are anchored to the verse they follow. Table and
     acrostic anchoring walks backward to the nearest verse boundary that
     was segmented, so it will be wrong if the markup around them is badly
     broken.

This script is public domain. You may do whatever you want with it.

"""

# pylint: disable=too-many-locals
# pylint: disable=too-many-arguments

import copy
import json
import logging
import re
from argparse import ArgumentDefaultsHelpFormatter, ArgumentParser
from dataclasses import asdict, dataclass, field, replace
from functools import partial
from os import path
from sys import exit as sysexit
from typing import Any

import lxml.html
from lxml import etree

# -------------------------------------------------------------------------- #

META = {
    "VERSION": "1.0",  # THIS SCRIPT version
    "DATE": "2026-10-19",  # THIS SCRIPT revision date
}

# -------------------------------------------------------------------------- #
# STRUCTURAL MARKERS

# verse boundary element and the attribute that holds its verse number.
VERSETAG = "verse_export"
VERSEATTR = "vn"

# style classes and the role they play.
# a class that isn't listed here is treated as plain presentation.
CLASSROLES = {
    # large chapter number shown at the start of a chapter
    "chapter-number": "chapter",
    "chapternum": "chapter",
    "cw_ch": "chapter",
    # section headings
    "subhead": "heading",
    # dialogue speakers (Song of Songs)
    "sos-speaker": "speaker",
    # acrostic letters (Psalm 119)
    "psa-hebrew": "acrostic",
    # words of Jesus
    "red": "redletter",
    "red-sc": "redletter",
    "woc": "redletter",
    "words-of-jesus": "redletter",
    # footnotes... tn holds the note, a-tn is the marker glyph in the text
    # and tn-ref is the reference label inside the note.
    "tn": "footnote",
    "a-tn": "footnotemarker",
    "tn-ref": "footnoteref",
    # ESV footnotes... the marker is in the text and the note is in the
    # footnotes section at the end of the passage.
    "footnote": "footnotemarker",
    "footnote-ref": "footnoteref",
    # chapter level elements
    "psa-title": "title",
    "psalm-title": "title",
    "psa-book": "division",
    "selah": "interlude",
    # verse numbers... chapter-num is the ESV first verse number (3:1)
    "vn": "versenum",
    "versenum": "versenum",
    "verse-num": "versenum",
    "chapter-num": "versenum",
    # passage title, copyright and footnote sections outside every verse
    "extra_text": "extra",
    "footnotes": "extra",
    "copyright": "extra",
}

# every role a style class may be given.
ROLES = (
    "chapter",
    "heading",
    "speaker",
    "acrostic",
    "redletter",
    "footnote",
    "footnotemarker",
    "footnoteref",
    "title",
    "division",
    "interlude",
    "versenum",
    "extra",
)

# roles that belong to the chapter rather than to a verse
CHAPTERROLES = ("title", "division", "interlude")

# elements the verse number segmenter looks inside of. Any other element that
# holds verse numbers is split between the verses it holds.
CONTAINERTAGS = {"body", "div", "section", "article", "main"}

# unclassed elements that are section headings in verse number markup
HEADINGTAGS = {"h3", "h4"}

# poetry lines... poet1, poet2, poet3 with optional -vn, -hd, -sp modifiers
POETRYRE = re.compile(r"^poet(?P<level>[1-3])(?P<mods>(?:-[a-z]+)*)$", re.U)

# body text paragraphs... body, body-ch-hd, body-hd, body-fl, body-sp...
BODYRE = re.compile(r"^body(?P<mods>(?:-[a-z]+)*)$", re.U)

# style modifier that asks for extra space (a stanza break) before an element
SPACEMOD = "sp"

# table cells that are headers even when they aren't th elements
HEADERCLASSES = {"tbl-hd", "table-head", "th"}

# book names used for the Psalms
PSALMBOOKS = {"psalm", "psalms", "ps", "psa"}

# full names of known translations
TRANSLATIONS = {
    "NLT": "New Living Translation",
    "ESV": "English Standard Version",
    "KJV": "King James Version",
    "ASV": "American Standard Version",
    "WEB": "World English Bible",
    "WEB_BRITISH": "World English Bible British Edition",
    "WEB_UPDATED": "World English Bible Updated",
}

# elements that separate words when text is extracted
BLOCKTAGS = {
    "address",
    "blockquote",
    "br",
    "dd",
    "div",
    "dl",
    "dt",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "hr",
    "li",
    "ol",
    "p",
    "section",
    "table",
    "td",
    "th",
    "tr",
    "ul",
    VERSETAG,
}

# paragraph styles of the standard JSON format (USFM marker names) and the
# part they play. Poetry styles are matched by USFMPOETRYRE and anything
# else is a prose paragraph.
USFMPARAS = {
    # section headings
    "s": "heading",
    "s1": "heading",
    "s2": "heading",
    "s3": "heading",
    "s4": "heading",
    # psalm title
    "d": "title",
    # major section (psalm book divisions)
    "ms": "division",
    "ms1": "division",
    "ms2": "division",
    # acrostic letter
    "qa": "acrostic",
    # speaker
    "sp": "speaker",
    # blank line (stanza break)
    "b": "blank",
    # chapter labels and cross reference lines
    "c": "skip",
    "cl": "skip",
    "cp": "skip",
    "mr": "skip",
    "r": "skip",
    "sr": "skip",
}

# character styles of the standard JSON format that mean something here
USFMCHARS = {
    # words of Jesus
    "wj": "redletter",
    # selah
    "qs": "interlude",
}

# footnote tag style that holds the note's reference label
USFMNOTEREF = "fr"

# prose paragraph styles that carry on the paragraph before them
USFMJOINED = {"m", "nb"}

# footnote types, tested in this order against the lowercased footnote
# content with a space added to the front.
FOOTNOTETYPES = (
    ("hebrew", ("hebrew",)),
    ("greek", ("greek",)),
    ("textualVariant", ("manuscripts",)),
    ("alternative", (" or ",)),
    ("cross-reference", ("compare", " see ")),
)

# -------------------------------------------------------------------------- #
# REGULAR EXPRESSIONS

# squeeze all whitespace, including non-breaking spaces, into a single space.
SQUEEZE = partial(re.sub, r"\s+", " ", flags=re.U)

# xml declaration. lxml won't parse a str that starts with one.
XMLDECLRE = re.compile(r"^\s*<\?xml[^>]*\?>", re.I)

# verse boundary closing tags. The capture group keeps them in re.split output.
VERSECLOSERE = re.compile(r"(</verse_export\s*>)", re.I)

# verse boundary start tags
VERSEOPENRE = re.compile(r"<verse_export\b", re.I)

# paragraph open and close tags. <pre> and <param> must not match.
POPENRE = re.compile(r"<p(?=[\s>/])", re.I)
PCLOSERE = re.compile(r"</p\s*>", re.I)

# regex used by the fallback segmenter
VERSERE = re.compile(
    r"""
        # verse boundary start tag. attributes go in a named group 'attrs'
        <verse_export\b(?P<attrs>[^>]*)>

        # put the verse content into a named group called 'inner'
        (?P<inner>.*?)

        # verse boundary end tag
        </verse_export\s*>
    """,
    re.I + re.DOTALL + re.VERBOSE,
)

# verse number attribute in the attrs group matched above
VNRE = re.compile(r"""\bvn\s*=\s*["']?(?P<num>[^"'\s>]*)""", re.I)

# acceptable verse numbers... 16, 16a, 16-17
VERSENUMRE = re.compile(r"^\d+(?:[a-z]|[-–]\d+)?$", re.U)

# verse number element text... 16, or 3:1 for the first verse of chapter 3
MARKERNUMRE = re.compile(r"(?:\d+:)?(?P<num>\d+[a-z]?)", re.U)

# trailing chapter number of a reference
CHAPTERRE = re.compile(r"\s+(?P<num>\d+)$", re.U)

# musical notation at the start of some superscriptions
MUSICALRE = re.compile(r"(For the (?:choir )?director[^.]*)", re.I)

# verse numbers run into verse text in flat text
FLATVERSERE = re.compile(
    r"""
        # a verse number is never preceded by another digit. This keeps 33For
        # from being read as 3 followed by 3For.
        (?<!\d)

        # put the verse number into a named group called 'num'
        (?P<num>\d{1,3})

        # the verse text starts right after the number with an uppercase
        # letter or opening punctuation.
        (?=[A-Z"'(\[“‘])
    """,
    re.U + re.VERBOSE,
)

# footnote residue in flat text... *7:8 Hebrew the festival.
FLATNOTERE = re.compile(r"\*\d+:\d+[^.]*\.?", re.U)

# poetry paragraph styles in the standard JSON format... q, q1, q2, qm1
USFMPOETRYRE = re.compile(r"^qm?(?P<level>[1-9])?$", re.U)

# -------------------------------------------------------------------------- #

# logging.basicConfig(format="%(levelname)s: %(message)s")
logging.basicConfig(format="%(message)s")
LOG = logging.getLogger(__name__)
LOG.setLevel(logging.WARNING)

# -------------------------------------------------------------------------- #
# UNIFIED DOCUMENT MODEL


class NoContentError(ValueError):
    """No verses could be found in the markup."""


@dataclass(frozen=True)
class PoetryLine:
    """One indented line of verse-form content."""

    text: str
    indent_level: int
    has_stanza_break_before: bool = False
    is_red_letter_span: bool = False


@dataclass(frozen=True)
class SpeakerLabel:
    """A speaker that appears before the poetry line at an index."""

    text: str
    before_poetry_line_index: int


@dataclass(frozen=True)
class Footnote:
    """A footnote taken out of the verse text."""

    marker: str
    reference: str
    content: str
    type: str


@dataclass(frozen=True)
class UnifiedVerse:
    """A single verse."""

    number: str
    text: str
    heading: str | None = None
    is_red_letter_span: bool = False
    is_first_verse_of_chapter: bool = False
    poetry_lines: tuple[PoetryLine, ...] | None = None
    poetry_indent_level: int | None = None
    has_stanza_break_before: bool = False
    speaker_labels: tuple[SpeakerLabel, ...] | None = None
    acrostic_letter: str | None = None
    footnotes: tuple[Footnote, ...] | None = None
    has_interlude_marker: bool = False
    starts_new_paragraph: bool = False
    prose_before: str | None = None
    prose_after: str | None = None
    # diagnostics only. never used as display text.
    raw_markup: str | None = None


@dataclass(frozen=True)
class AcrosticLetter:
    """An acrostic letter and the verse it follows."""

    letter: str
    after_verse: str


@dataclass(frozen=True)
class SectionHeading:
    """A section heading and the verse it follows."""

    after_verse: str
    heading: str


@dataclass(frozen=True)
class PsalmMetadata:
    """Chapter level data for a psalm."""

    composition_number: int
    superscription: str | None = None
    musical_notation: str | None = None
    has_interlude: bool = False
    interlude_positions: tuple[str, ...] = ()
    acrostic_letters: tuple[AcrosticLetter, ...] | None = None
    composition_type: str | None = None
    collection_division: str | None = None
    section_headings: tuple[SectionHeading, ...] | None = None


@dataclass(frozen=True)
class TableRow:
    """A table row."""

    cells: tuple[str, ...]
    verse_number: str | None = None


@dataclass(frozen=True)
class BibleTable:
    """A table (genealogies, census lists) and the verse it follows."""

    rows: tuple[TableRow, ...]
    after_verse: str | None = None
    headers: tuple[str, ...] | None = None


@dataclass(frozen=True)
class UnifiedChapter:
    """
    A parsed chapter.

    parse_mode tells how the verses were found: "structural" when the parsed
    tree had verse boundary elements, "fallback" when they had to be found
    with a regular expression, "markers" when the markup was split at verse
    number elements, "json" for parsejson() results and "flat" for
    parseflat() results.

    """

    reference: str
    translation_id: str
    book_name: str
    chapter_number: str
    verses: tuple[UnifiedVerse, ...]
    chapter_metadata: PsalmMetadata | None = None
    tables: tuple[BibleTable, ...] | None = None
    parse_mode: str = "structural"
    translation_name: str | None = None


@dataclass(frozen=True)
class ChapterMetadata:
    """Document wide data that isn't attached to a single verse."""

    superscription: str | None = None
    has_interlude: bool = False
    interlude_positions: tuple[str, ...] = ()
    acrostic_letters: tuple[AcrosticLetter, ...] = ()
    collection_division: str | None = None
    tables: tuple[BibleTable, ...] = ()


@dataclass(frozen=True)
class Segment:
    """The markup for one verse."""

    verse_number: str
    element: Any = field(compare=False, repr=False)
    raw_markup: str = ""
    # the verse number is the first thing in a paragraph
    starts_paragraph: bool = False


@dataclass(frozen=True)
class Segmentation:
    """
    Verse segments and the method that found them.

    kind is "structural", "fallback" or "markers". root is the tree chapter
    level data is read from, and anchors maps each verse boundary element in
    that tree to its verse number.

    """

    kind: str
    segments: tuple[Segment, ...]
    root: Any = field(default=None, compare=False, repr=False)
    anchors: dict[Any, str] = field(default_factory=dict, compare=False, repr=False)


# -------------------------------------------------------------------------- #
# TREE HELPERS


def classes(elem: Any) -> list[str]:
    """Get the style classes of an element."""
    if not isinstance(elem.tag, str):
        return []
    value = elem.get("class")
    return value.split() if value else []


def roleof(elem: Any, roles: dict[str, str] = CLASSROLES) -> str | None:
    """Get the role of an element from its style classes."""
    for _ in classes(elem):
        if _ in roles:
            return roles[_]
    return None


def findrole(
    root: Any, role: str, roles: dict[str, str] = CLASSROLES
) -> list[Any]:
    """Find elements with a role, in document order. root is included."""
    return [_ for _ in root.iter() if roleof(_, roles) == role]


def poetrystyle(elem: Any) -> tuple[int, bool] | None:
    """Get indent level and space-before flag of a poetry line element."""
    for _ in classes(elem):
        match = POETRYRE.match(_)
        if match:
            mods = match.group("mods").split("-")
            return int(match.group("level")), SPACEMOD in mods
    return None


def findpoetry(root: Any) -> list[Any]:
    """Find poetry line elements, in document order."""
    return [_ for _ in root.iter() if poetrystyle(_) is not None]


def isbody(elem: Any) -> bool:
    """Test for a body text paragraph."""
    return elem.tag == "p" and any(BODYRE.match(_) for _ in classes(elem))


def hasspacebefore(elem: Any) -> bool:
    """Test for the space-before style modifier on an element."""
    return any(SPACEMOD in _.split("-")[1:] for _ in classes(elem))


def removeall(elems: list[Any]) -> None:
    """Remove elements from their tree. Tail text stays in place."""
    for _ in elems:
        if _.getparent() is not None:
            _.drop_tree()


def gettext(elem: Any) -> str:
    """
    Get the text of an element.

    Block elements are spaced apart so words in adjacent paragraphs don't
    run together. Whitespace is squeezed and the result stripped.

    """
    parts: list[str] = []

    def walk(node: Any) -> None:
        """Collect text in document order."""
        block = node.tag in BLOCKTAGS
        if block:
            parts.append(" ")
        if node.text:
            parts.append(node.text)
        for child in node:
            # comments and processing instructions only contribute their tail
            if isinstance(child.tag, str):
                walk(child)
            if child.tail:
                parts.append(child.tail)
        if block:
            parts.append(" ")

    walk(elem)
    return SQUEEZE("".join(parts)).strip()


def cleantext(elem: Any, roles: dict[str, str] = CLASSROLES) -> str:
    """Get the text of an element without any footnotes it contains."""
    work = copy.deepcopy(elem)
    removeall(findrole(work, "footnote", roles) + findrole(work, "footnotemarker", roles))
    return gettext(work)


def tostring(elem: Any) -> str:
    """Serialize an element without its tail."""
    return lxml.html.tostring(elem, encoding="unicode", with_tail=False)


# -------------------------------------------------------------------------- #
# MARKUP PREPROCESSOR


def repair(text: str) -> str:
    """
    Close unclosed paragraphs.

    For the content between consecutive verse boundary closing tags, add any
    missing </p> tags right before the closing tag. Otherwise the tree parser
    nests the next verse inside the open paragraph and the two verses run
    together. Only paragraphs opened inside the verse count. A paragraph
    opened before the verse start tag wraps the verse and is left alone.
    Nothing else is changed.

    """
    parts = VERSECLOSERE.split(text)
    changed = False

    # even indexes hold content. odd indexes hold the closing tags.
    for i in range(0, len(parts) - 1, 2):
        starts = list(VERSEOPENRE.finditer(parts[i]))
        inner = parts[i][starts[-1].end() :] if starts else parts[i]
        missing = len(POPENRE.findall(inner)) - len(PCLOSERE.findall(inner))
        if missing > 0:
            parts[i] = f"{parts[i]}{'</p>' * missing}"
            changed = True

    return "".join(parts) if changed else text


# -------------------------------------------------------------------------- #
# VERSE SEGMENTER


def versenumber(value: str | None, index: int) -> str:
    """Check a verse number attribute. Use the position if it's unusable."""
    value = (value or "").strip()
    if VERSENUMRE.match(value):
        return value
    LOG.warning(
        "Malformed verse number %r at position %d... using %d",
        value,
        index + 1,
        index + 1,
    )
    return str(index + 1)


def segment(
    doc: Any, rawmarkup: str, roles: dict[str, str] = CLASSROLES
) -> Segmentation:
    """Split chapter markup into one segment per verse, in source order."""
    elems = list(doc.iter(VERSETAG)) if doc is not None else []
    if elems:
        LOG.debug("Found %d verse elements", len(elems))
        segments = tuple(
            Segment(versenumber(_.get(VERSEATTR), i), _, tostring(_))
            for i, _ in enumerate(elems)
        )
        return Segmentation(
            "structural", segments, doc, {_.element: _.verse_number for _ in segments}
        )

    # the tree has no verse elements. look for them in the raw markup and
    # parse each one by itself. The parsed verses are gathered under one
    # element so chapter level data can still be read from them.
    container = lxml.html.Element("div")
    segments = []
    for i, match in enumerate(VERSERE.finditer(rawmarkup)):
        num = VNRE.search(match.group("attrs"))
        number = versenumber(num.group("num") if num else None, i)
        elem = lxml.html.fragment_fromstring(match.group("inner"), create_parent="div")
        elem.tag = VERSETAG
        elem.set(VERSEATTR, number)
        container.append(elem)
        segments.append(Segment(number, elem, match.group(0)))
    if segments:
        LOG.warning("No verse elements in tree... fallback found %d", len(segments))
        return Segmentation(
            "fallback",
            tuple(segments),
            container,
            {_.element: _.verse_number for _ in segments},
        )

    # no verse boundaries at all. split at the verse numbers instead.
    if doc is not None:
        return MarkerSplitter(roles).split(doc)
    return Segmentation("fallback", ())


class MarkerSplitter:
    """
    Split markup that has verse numbers but no verse boundary elements.

    A verse runs from its number to the next one. An element that holds
    verse numbers is split between the verses, and each piece is wrapped in
    copies of the elements it came from so paragraph and poetry styles and
    red letter spans are kept. Text before the first verse number of an
    element, and elements with no verse numbers, go with the verse before
    them. Section headings go with the verse after them. Passage titles,
    copyright lines and footnote sections are skipped, but footnotes in a
    footnote section are copied in right after their markers.

    """

    def __init__(self, roles: dict[str, str]) -> None:
        self.roles = roles
        self.notes: dict[str, Any] = {}
        self.verses: list[tuple[Any, Any, bool]] = []
        self.pending: list[Any] = []
        self.shells: list[Any] = []
        self.chain: list[Any] = []
        self.origs: list[Any] = []
        self.seen = False

    def split(self, doc: Any) -> Segmentation:
        """Split a document into verse segments."""
        body = doc.find("body")
        root = body if body is not None else doc
        self.notes = self.footnotes(root)
        self.walk(root)

        # drop wrappers that ended up with nothing in them
        for shell in reversed(self.shells):
            if (
                len(shell) == 0
                and not (shell.text or "").strip()
                and shell.getparent() is not None
            ):
                shell.drop_tree()

        segments = []
        anchors = {}
        for i, (marker, container, paragraph) in enumerate(self.verses):
            match = MARKERNUMRE.search(gettext(marker))
            number = versenumber(match.group("num") if match else None, i)
            anchors[marker] = number
            segments.append(Segment(number, container, tostring(container), paragraph))
        if segments:
            LOG.info("No verse elements... split at %d verse numbers", len(segments))
        return Segmentation("markers", tuple(segments), doc, anchors)

    def footnotes(self, root: Any) -> dict[str, Any]:
        """Get the notes in footnote sections, keyed by the id of their backlink."""
        notes = {}
        noteclass = next((k for k, v in self.roles.items() if v == "footnote"), None)
        if noteclass is None:
            return notes
        for section in findrole(root, "extra", self.roles):
            for ref in findrole(section, "footnoteref", self.roles):
                para = ref.getparent()
                links = [_ for _ in para.iter("a") if _.get("id")]
                if not links:
                    continue
                note = copy.deepcopy(para)
                removeall(findrole(note, "footnotemarker", self.roles))
                note.tag = "span"
                note.attrib.clear()
                note.set("class", noteclass)
                note.tail = None
                notes[links[0].get("id")] = note
        return notes

    def copyof(self, elem: Any) -> Any:
        """Copy an element, adding the notes its footnote markers point to."""
        work = copy.deepcopy(elem)
        for marker in findrole(work, "footnotemarker", self.roles):
            for link in marker.iter("a"):
                note = self.notes.get((link.get("href") or "").lstrip("#"))
                if note is not None:
                    marker.addnext(copy.deepcopy(note))
                    break
        return work

    def shell(self, elem: Any) -> Any:
        """Make an empty copy of an element to wrap part of its content."""
        shell = lxml.html.Element(elem.tag, dict(elem.attrib))
        self.shells.append(shell)
        return shell

    def hasmarkers(self, elem: Any) -> bool:
        """Test for verse numbers in an element."""
        return bool(findrole(elem, "versenum", self.roles))

    def walk(self, parent: Any) -> None:
        """Find the elements that hold verses."""
        if any(roleof(_, self.roles) == "versenum" for _ in parent):
            # verse numbers loose in a container. split the container itself.
            self.block(parent)
            return
        for child in parent:
            if not isinstance(child.tag, str):
                continue
            role = roleof(child, self.roles)
            marked = self.hasmarkers(child)
            if role == "extra" or (not marked and findrole(child, "extra", self.roles)):
                # copyright lines are paragraphs that hold an extra element
                continue
            if role == "heading" or (child.tag in HEADINGTAGS and not classes(child)):
                heading = copy.deepcopy(child)
                heading.tail = None
                self.pending.append(heading)
            elif not self.hasmarkers(child):
                if self.verses:
                    self.verses[-1][1].append(self.copyof(child))
            elif child.tag in CONTAINERTAGS:
                self.walk(child)
            else:
                self.block(child)

    def block(self, elem: Any) -> None:
        """Split an element between the verses that start in it."""
        self.origs = [elem]
        self.chain = [self.shell(elem)]
        self.chain[0].text = elem.text
        self.seen = bool((elem.text or "").strip())
        if self.verses:
            self.verses[-1][1].append(self.chain[0])
        self.descend(elem, 0)

    def addtext(self, depth: int, text: str | None) -> None:
        """Add text after the last thing in the current wrapper."""
        if not text:
            return
        if text.strip():
            self.seen = True
        shell = self.chain[depth]
        if len(shell):
            shell[-1].tail = (shell[-1].tail or "") + text
        else:
            shell.text = (shell.text or "") + text

    def descend(self, elem: Any, depth: int) -> None:
        """Copy the content of elem, starting a new verse at each verse number."""
        for child in elem:
            if isinstance(child.tag, str) and roleof(child, self.roles) == "extra":
                self.addtext(depth, child.tail)
            elif isinstance(child.tag, str) and roleof(child, self.roles) == "versenum":
                self.startverse(child, depth)
                self.chain[depth].append(self.copyof(child))
            elif isinstance(child.tag, str) and self.hasmarkers(child):
                shell = self.shell(child)
                self.chain[depth].append(shell)
                self.chain = self.chain[: depth + 1] + [shell]
                self.origs = self.origs[: depth + 1] + [child]
                self.addtext(depth + 1, child.text)
                self.descend(child, depth + 1)
                self.chain = self.chain[: depth + 1]
                self.origs = self.origs[: depth + 1]
                self.addtext(depth, child.tail)
            else:
                work = self.copyof(child)
                self.chain[depth].append(work)
                if isinstance(child.tag, str) or (work.tail or "").strip():
                    self.seen = True

    def startverse(self, marker: Any, depth: int) -> None:
        """Start a new verse and rebuild the wrappers around the verse number."""
        paragraph = self.origs[0].tag == "p" and not self.seen
        container = lxml.html.Element("div")
        for heading in self.pending:
            container.append(heading)
        self.pending = []

        self.chain = [self.shell(_) for _ in self.origs[: depth + 1]]
        container.append(self.chain[0])
        for outer, inner in zip(self.chain, self.chain[1:]):
            outer.append(inner)

        self.verses.append((marker, container, paragraph))
        self.seen = True


# -------------------------------------------------------------------------- #
# VERSE CONTENT EXTRACTOR
#
# Each v2u_ function handles one step and works on the same copy of the verse
# tree. The order they're called in matters. Each step removes what it
# extracts so later steps, and the final text, never see it.


def v2u_paragraph(work: Any, roles: dict[str, str]) -> bool:
    """Test for a body paragraph that holds the verse number."""
    return any(isbody(_) and findrole(_, "versenum", roles) for _ in work.iter("p"))


def wrappedparagraph(elem: Any) -> bool:
    """Test for the first verse element in a body paragraph that wraps verses."""
    parent = next(elem.iterancestors("p"), None)
    if parent is None or not isbody(parent):
        return False
    return next(parent.iter(VERSETAG), None) is elem


def v2u_chapternum(work: Any, roles: dict[str, str]) -> bool:
    """Remove the chapter number display. Report if there was one."""
    found = findrole(work, "chapter", roles)
    removeall(found)
    return bool(found)


def v2u_heading(work: Any, roles: dict[str, str]) -> str | None:
    """
    Remove section headings and return the first one.

    Headings either have the heading role or are unclassed h3 or h4
    elements, which is how the ESV API marks them.

    """
    found = [
        _
        for _ in work.iter()
        if roleof(_, roles) == "heading"
        or (_.tag in HEADINGTAGS and not classes(_))
    ]
    heading = cleantext(found[0], roles) if found else ""
    removeall(found)
    return heading or None


def v2u_speakers(work: Any, roles: dict[str, str]) -> list[SpeakerLabel]:
    """
    Remove speaker labels and return them with their positions.

    Labels and poetry lines alternate freely, so both are counted in one
    pass. A label goes before the poetry line whose index is the number of
    lines finished so far, so a label inside a line goes with that line.

    """
    speakers = []
    found = []
    count = 0

    def walk(node: Any) -> None:
        """Count poetry lines once their content has been seen."""
        nonlocal count
        for elem in node:
            if roleof(elem, roles) == "speaker":
                found.append(elem)
                text = cleantext(elem, roles)
                if text:
                    speakers.append(SpeakerLabel(text, count))
            elif poetrystyle(elem) is not None:
                walk(elem)
                count += 1
            else:
                walk(elem)

    walk(work)
    removeall(found)
    return speakers


def v2u_acrostic(work: Any, roles: dict[str, str]) -> str | None:
    """Remove acrostic letters and return the first one."""
    found = findrole(work, "acrostic", roles)
    letter = cleantext(found[0], roles) if found else ""
    removeall(found)
    return letter or None


def v2u_redletter(work: Any, roles: dict[str, str]) -> bool:
    """Test for words of Jesus. Nothing is removed."""
    return bool(findrole(work, "redletter", roles))


def classifyfootnote(content: str) -> str:
    """Get the footnote type from keywords in its content."""
    text = f" {SQUEEZE(content.lower())}"
    for notetype, keys in FOOTNOTETYPES:
        if any(_ in text for _ in keys):
            return notetype
    return "other"


def v2u_footnotes(work: Any, number: str, roles: dict[str, str]) -> list[Footnote]:
    """Remove footnotes and their markers. Return the footnotes."""
    notes = []
    found = findrole(work, "footnote", roles)
    for elem in found:
        # the marker glyph is the element right before the note
        marker = "*"
        previous = elem.getprevious()
        if previous is not None and roleof(previous, roles) == "footnotemarker":
            marker = gettext(previous) or marker

        body = copy.deepcopy(elem)
        refs = findrole(body, "footnoteref", roles)
        reference = (gettext(refs[0]) if refs else "") or number
        removeall(refs)
        content = gettext(body)

        notetype = classifyfootnote(content)
        LOG.debug("Footnote %s %s (%s): %s", marker, reference, notetype, content)
        notes.append(Footnote(marker, reference, content, notetype))

    removeall(found + findrole(work, "footnotemarker", roles))
    return notes


def v2u_chapterlevel(work: Any, roles: dict[str, str]) -> bool:
    """
    Remove chapter level elements. Report if an interlude marker was present.

    Titles, book divisions, interludes and tables are extracted from the
    whole document by extractmetadata().

    """
    found = {_: findrole(work, _, roles) for _ in CHAPTERROLES}
    removeall(
        found["title"]
        + found["division"]
        + found["interlude"]
        + list(work.iter("table"))
    )
    return bool(found["interlude"])


def v2u_versenum(work: Any, roles: dict[str, str]) -> None:
    """Remove verse number displays."""
    removeall(findrole(work, "versenum", roles))


def v2u_poetry(work: Any, roles: dict[str, str]) -> list[PoetryLine]:
    """Get the poetry lines."""
    lines = []
    for elem in findpoetry(work):
        level, spacebefore = poetrystyle(elem)
        lines.append(
            PoetryLine(
                gettext(elem),
                level,
                spacebefore,
                bool(findrole(elem, "redletter", roles)),
            )
        )
    return lines


def toplevel(root: Any, elem: Any) -> Any:
    """Get the child of root that contains elem."""
    while elem.getparent() is not None and elem.getparent() is not root:
        elem = elem.getparent()
    return elem


def v2u_prose(work: Any, roles: dict[str, str]) -> tuple[str | None, str | None]:
    """Get the prose before and after the poetry in a verse."""
    poems = findpoetry(work)
    if poems[0] is work:
        # the whole verse is a poetry line
        return None, None
    children = list(work)
    first = children.index(toplevel(work, poems[0]))
    last = children.index(toplevel(work, poems[-1]))

    # paragraphs before the poetry. An unstyled or empty paragraph marks the
    # start of a poetry section.
    before = []
    for child in children[:first]:
        if child.tag != "p":
            continue
        text = gettext(child)
        if not classes(child) or not text:
            break
        before.append(text)

    # no paragraphs... use bare text and inline elements instead
    if not before:
        skip = {"versenum", "footnote", "footnotemarker", "heading", "chapter"}
        bare = [work.text or ""]
        for child in children[:first]:
            if isinstance(child.tag, str) and child.tag not in BLOCKTAGS:
                if roleof(child, roles) not in skip:
                    bare.append(gettext(child))
            bare.append(child.tail or "")
        before = [SQUEEZE(" ".join(bare)).strip()]

    # body text paragraphs after the poetry
    after = [gettext(_) for _ in children[last + 1 :] if isbody(_)]

    prosebefore = SQUEEZE(" ".join(before)).strip()
    proseafter = SQUEEZE(" ".join(after)).strip()
    return prosebefore or None, proseafter or None


def v2u_stanzabreak(elem: Any) -> bool:
    """Test for the space-before modifier anywhere in a verse."""
    return any(hasspacebefore(_) for _ in elem.iter())


def extractverse(
    elem: Any,
    number: str,
    isfirst: bool,
    roles: dict[str, str] = CLASSROLES,
    rawmarkup: str | None = None,
    startspar: bool = False,
) -> UnifiedVerse:
    """Extract one verse from its markup. elem is never modified."""
    work = copy.deepcopy(elem)

    startspar = startspar or v2u_paragraph(work, roles) or wrappedparagraph(elem)
    if v2u_chapternum(work, roles):
        # the chapter number display outranks the verse's position
        isfirst = True
    heading = v2u_heading(work, roles)
    speakers = v2u_speakers(work, roles)
    letter = v2u_acrostic(work, roles)
    redletter = v2u_redletter(work, roles)
    footnotes = v2u_footnotes(work, number, roles)
    interlude = v2u_chapterlevel(work, roles)
    v2u_versenum(work, roles)
    lines = v2u_poetry(work, roles)
    prosebefore, proseafter = v2u_prose(work, roles) if lines else (None, None)
    stanzabreak = v2u_stanzabreak(elem) or (
        bool(lines) and lines[0].has_stanza_break_before
    )

    return UnifiedVerse(
        number=number,
        text=gettext(work),
        heading=heading,
        is_red_letter_span=redletter,
        is_first_verse_of_chapter=isfirst,
        poetry_lines=tuple(lines) if lines else None,
        poetry_indent_level=max(_.indent_level for _ in lines) if lines else None,
        has_stanza_break_before=stanzabreak,
        speaker_labels=tuple(speakers) if speakers else None,
        acrostic_letter=letter,
        footnotes=tuple(footnotes) if footnotes else None,
        has_interlude_marker=interlude,
        starts_new_paragraph=isfirst or startspar,
        prose_before=prosebefore,
        prose_after=proseafter,
        raw_markup=rawmarkup,
    )


# -------------------------------------------------------------------------- #
# CHAPTER LEVEL METADATA EXTRACTOR


def anchorverse(elem: Any, inside: bool, anchors: dict[Any, str]) -> str | None:
    """
    Get the number of the verse an element goes with.

    anchors maps verse boundary elements to the verse numbers they were
    given when the chapter was segmented. When inside is true, an element
    within a verse goes with that verse. Otherwise it goes with the nearest
    verse before it.

    """
    if inside:
        for _ in elem.iterancestors():
            if _ in anchors:
                return anchors[_]
    # preceding:: is in document order and never holds ancestors
    for _ in reversed(elem.xpath("preceding::*")):
        if _ in anchors:
            return anchors[_]
    return None


def boundaries(doc: Any) -> dict[Any, str]:
    """Map the verse elements of a tree to their verse numbers."""
    return {
        _: versenumber(_.get(VERSEATTR), i) for i, _ in enumerate(doc.iter(VERSETAG))
    }


def m2u_superscription(doc: Any, roles: dict[str, str]) -> str | None:
    """Get the chapter title without footnotes."""
    found = findrole(doc, "title", roles)
    return (cleantext(found[0], roles) or None) if found else None


def m2u_interludes(
    doc: Any, roles: dict[str, str], anchors: dict[Any, str]
) -> tuple[bool, tuple[str, ...]]:
    """Find interlude markers and the verses they follow."""
    found = findrole(doc, "interlude", roles)
    positions: list[str] = []
    for elem in found:
        verse = anchorverse(elem, True, anchors)
        if verse is not None and verse not in positions:
            positions.append(verse)
    return bool(found), tuple(positions)


def m2u_acrostics(
    doc: Any, roles: dict[str, str], anchors: dict[Any, str]
) -> tuple[AcrosticLetter, ...]:
    """Find acrostic letters. A letter heads the verse after it."""
    return tuple(
        AcrosticLetter(cleantext(_, roles), anchorverse(_, False, anchors) or "0")
        for _ in findrole(doc, "acrostic", roles)
    )


def m2u_division(doc: Any, roles: dict[str, str]) -> str | None:
    """Get the book division label."""
    found = findrole(doc, "division", roles)
    return (cleantext(found[0], roles) or None) if found else None


def isheader(cell: Any) -> bool:
    """Test for a header cell."""
    return cell.tag == "th" or bool(HEADERCLASSES.intersection(classes(cell)))


def m2u_tables(
    doc: Any, roles: dict[str, str], anchors: dict[Any, str]
) -> tuple[BibleTable, ...]:
    """Get tables with their header rows and any verse numbers in them."""
    tables = []
    for table in doc.iter("table"):
        headers = None
        rows = []
        for i, row in enumerate(table.iter("tr")):
            cells = [_ for _ in row if isinstance(_.tag, str) and _.tag in ("td", "th")]
            if i == 0 and cells and all(isheader(_) for _ in cells):
                headers = tuple(cleantext(_, roles) for _ in cells)
                continue

            values = []
            versenum = None
            for cell in cells:
                work = copy.deepcopy(cell)
                nums = findrole(work, "versenum", roles)
                if nums:
                    versenum = versenum or gettext(nums[0]) or None
                    removeall(nums)
                values.append(cleantext(work, roles))

            # rows without cells are dropped
            if values:
                rows.append(TableRow(tuple(values), versenum))

        if rows or headers:
            tables.append(
                BibleTable(tuple(rows), anchorverse(table, True, anchors), headers)
            )
    return tuple(tables)


def extractmetadata(
    doc: Any,
    roles: dict[str, str] = CLASSROLES,
    anchors: dict[Any, str] | None = None,
) -> ChapterMetadata:
    """
    Extract chapter level data from the whole document.

    anchors defaults to the verse elements of doc and their vn attributes.

    """
    if anchors is None:
        anchors = boundaries(doc)
    hasinterlude, positions = m2u_interludes(doc, roles, anchors)
    return ChapterMetadata(
        superscription=m2u_superscription(doc, roles),
        has_interlude=hasinterlude,
        interlude_positions=positions,
        acrostic_letters=m2u_acrostics(doc, roles, anchors),
        collection_division=m2u_division(doc, roles),
        tables=m2u_tables(doc, roles, anchors),
    )


# -------------------------------------------------------------------------- #
# UNIFIED DOCUMENT ASSEMBLER


def splitreference(reference: str) -> tuple[str, str]:
    """Get book name and chapter number from a chapter reference."""
    reference = reference.strip()
    match = CHAPTERRE.search(reference)
    if match is None:
        return reference, "1"
    return reference[: match.start()].strip(), match.group("num")


def post_interludes(verses: list[UnifiedVerse], positions: tuple[str, ...]) -> list[UnifiedVerse]:
    """Flag the verses that interlude markers follow."""
    return [
        replace(_, has_interlude_marker=True)
        if _.number in positions and not _.has_interlude_marker
        else _
        for _ in verses
    ]


def post_acrostics(
    verses: list[UnifiedVerse], letters: tuple[AcrosticLetter, ...]
) -> list[UnifiedVerse]:
    """Give acrostic letters found between verses to the verse that follows."""
    numbers = [_.number for _ in verses]
    for letter in letters:
        if letter.after_verse == "0":
            i = 0
        elif letter.after_verse in numbers:
            i = numbers.index(letter.after_verse) + 1
        else:
            continue
        if i < len(verses) and verses[i].acrostic_letter is None:
            verses[i] = replace(verses[i], acrostic_letter=letter.letter)
    return verses


def sectionheadings(verses: list[UnifiedVerse]) -> tuple[SectionHeading, ...]:
    """List verse headings with the verse before each."""
    return tuple(
        SectionHeading(verses[i - 1].number if i else "0", _.heading)
        for i, _ in enumerate(verses)
        if _.heading
    )


def assemble(
    verses: list[UnifiedVerse],
    metadata: ChapterMetadata,
    reference: str,
    translation: str = "NLT",
    mode: str = "structural",
) -> UnifiedChapter:
    """Combine verses and chapter data into a chapter document."""
    bookname, chapternum = splitreference(reference)

    verses = post_acrostics(
        post_interludes(list(verses), metadata.interlude_positions),
        metadata.acrostic_letters,
    )

    psalmmeta = None
    if bookname.lower() in PSALMBOOKS:
        musical = (
            MUSICALRE.search(metadata.superscription)
            if metadata.superscription
            else None
        )
        headings = sectionheadings(verses)
        psalmmeta = PsalmMetadata(
            composition_number=int(chapternum),
            superscription=metadata.superscription,
            musical_notation=musical.group(1).strip() if musical else None,
            has_interlude=metadata.has_interlude,
            interlude_positions=metadata.interlude_positions,
            acrostic_letters=metadata.acrostic_letters or None,
            composition_type="acrostic" if metadata.acrostic_letters else None,
            collection_division=metadata.collection_division,
            section_headings=headings or None,
        )

    return UnifiedChapter(
        reference=reference,
        translation_id=translation,
        book_name=bookname,
        chapter_number=chapternum,
        verses=tuple(verses),
        chapter_metadata=psalmmeta,
        tables=metadata.tables or None,
        parse_mode=mode,
        translation_name=TRANSLATIONS.get(translation.upper()),
    )


# -------------------------------------------------------------------------- #


def parsetree(markup: str) -> Any:
    """Parse markup into a tree. Return None if there's nothing to parse."""
    try:
        return lxml.html.document_fromstring(XMLDECLRE.sub("", markup, count=1))
    except etree.ParserError as err:
        LOG.warning("Unable to parse markup: %s", err)
        return None


def parse(
    markup: str,
    reference: str,
    translation: str = "NLT",
    roles: dict[str, str] = CLASSROLES,
) -> UnifiedChapter:
    """Convert provider markup for one chapter to a chapter document."""
    if not markup or not markup.strip():
        raise NoContentError(f"No content for {reference}")

    markup = repair(markup)
    doc = parsetree(markup)
    segmentation = segment(doc, markup, roles)
    if not segmentation.segments:
        raise NoContentError(f"No verses found for {reference}")

    verses = [
        extractverse(
            _.element, _.verse_number, i == 0, roles, _.raw_markup, _.starts_paragraph
        )
        for i, _ in enumerate(segmentation.segments)
    ]
    # fallback verses are read from their own tree, not the document's
    metadata = extractmetadata(segmentation.root, roles, segmentation.anchors)

    LOG.debug("Parsed %s: %d verses (%s)", reference, len(verses), segmentation.kind)
    return assemble(verses, metadata, reference, translation, segmentation.kind)


def parseflat(markup: str, reference: str, translation: str = "NLT") -> UnifiedChapter:
    """
    Convert flat text with verse numbers run into the text.

    This only finds verse numbers and verse text. A number is accepted as a
    verse number when it is the first one found or follows the last one.

    """
    doc = parsetree(markup) if markup and markup.strip() else None
    if doc is None:
        raise NoContentError(f"No content for {reference}")
    body = doc.find("body")
    text = gettext(body if body is not None else doc)

    matches = []
    expected = None
    for match in FLATVERSERE.finditer(text):
        num = int(match.group("num"))
        if expected is None or num == expected:
            matches.append(match)
            expected = num + 1

    verses = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        versetext = SQUEEZE(FLATNOTERE.sub("", text[match.end() : end])).strip()
        verses.append(
            UnifiedVerse(
                number=match.group("num"),
                text=versetext,
                is_first_verse_of_chapter=i == 0,
                starts_new_paragraph=i == 0,
            )
        )
    if not verses:
        raise NoContentError(f"No verses found for {reference}")

    return assemble(verses, ChapterMetadata(), reference, translation, "flat")


# -------------------------------------------------------------------------- #
# STANDARD JSON FORMAT


def isnote(item: dict[str, Any]) -> bool:
    """Test for a footnote item."""
    return item.get("type") == "note" or item.get("name") == "note"


def jsontext(items: list[dict[str, Any]] | None) -> str:
    """Get the text of some items, leaving out footnotes."""
    parts = []
    for item in items or ():
        if isnote(item):
            continue
        if "text" in item:
            parts.append(str(item["text"]))
        parts.append(jsontext(item.get("items")))
    return "".join(parts)


def jsonnote(item: dict[str, Any], number: str) -> Footnote:
    """Convert a footnote item."""
    reference = ""
    parts = []
    for child in item.get("items") or ():
        text = jsontext([child])
        if (child.get("attrs") or {}).get("style") == USFMNOTEREF:
            reference = SQUEEZE(text).strip()
        else:
            parts.append(text)
    content = SQUEEZE("".join(parts)).strip()

    # + and - ask for a generated caller
    caller = str((item.get("attrs") or {}).get("caller") or "+")
    marker = "*" if caller in ("+", "-") else caller
    return Footnote(marker, reference or number, content, classifyfootnote(content))


class JsonVerse:
    """The parts of a verse while the standard JSON format is being read."""

    def __init__(self, number: str, isfirst: bool, paragraph: bool) -> None:
        self.number = number
        self.isfirst = isfirst
        self.paragraph = paragraph
        self.text: list[str] = []
        self.heading: str | None = None
        self.letter: str | None = None
        self.redletter = False
        self.interlude = False
        self.notes: list[Footnote] = []
        self.speakers: list[SpeakerLabel] = []
        # each line is [level, text parts, stanza break, red letter]
        self.lines: list[list[Any]] = []
        self.linepara: int | None = None
        self.before: list[str] = []
        self.after: list[str] = []

    def verse(self) -> UnifiedVerse:
        """Build the finished verse."""
        lines = [
            PoetryLine(SQUEEZE("".join(_[1])).strip(), _[0], _[2], _[3])
            for _ in self.lines
        ]
        before = SQUEEZE(" ".join(self.before)).strip() if lines else ""
        after = SQUEEZE(" ".join(self.after)).strip() if lines else ""
        return UnifiedVerse(
            number=self.number,
            text=SQUEEZE("".join(self.text)).strip(),
            heading=self.heading,
            is_red_letter_span=self.redletter,
            is_first_verse_of_chapter=self.isfirst,
            poetry_lines=tuple(lines) if lines else None,
            poetry_indent_level=max(_.indent_level for _ in lines) if lines else None,
            has_stanza_break_before=bool(lines) and lines[0].has_stanza_break_before,
            speaker_labels=tuple(self.speakers) if self.speakers else None,
            acrostic_letter=self.letter,
            footnotes=tuple(self.notes) if self.notes else None,
            has_interlude_marker=self.interlude,
            starts_new_paragraph=self.isfirst or self.paragraph,
            prose_before=before or None,
            prose_after=after or None,
        )


class JsonReader:
    """Read the paragraphs of a chapter in the standard JSON format."""

    def __init__(self) -> None:
        self.verses: list[JsonVerse] = []
        self.heading: str | None = None
        self.letter: str | None = None
        self.speaker: str | None = None
        self.stanza = False
        self.title: str | None = None
        self.division: str | None = None
        self.letters: list[AcrosticLetter] = []
        self.positions: list[str] = []
        self.hasinterlude = False
        # the paragraph being read
        self.index = 0
        self.level: int | None = None
        self.joined = False
        self.fresh = True

    def read(self, content: list[dict[str, Any]]) -> None:
        """Read every paragraph."""
        for index, para in enumerate(content):
            style = str((para.get("attrs") or {}).get("style") or "")
            kind = USFMPARAS.get(style)
            if kind == "skip":
                continue
            if kind == "blank":
                self.stanza = True
            elif kind is not None:
                self.label(kind, SQUEEZE(jsontext(para.get("items"))).strip())
            else:
                poetry = USFMPOETRYRE.match(style)
                self.index = index
                self.level = min(int(poetry.group("level") or 1), 3) if poetry else None
                self.joined = style in USFMJOINED
                self.fresh = True
                if self.verses:
                    self.verses[-1].text.append(" ")
                self.walk(para.get("items"), False)

    def label(self, kind: str, text: str) -> None:
        """Keep a heading, title or other label paragraph."""
        if not text:
            return
        if kind == "heading":
            self.heading = self.heading or text
        elif kind == "title":
            self.title = self.title or text
        elif kind == "division":
            self.division = self.division or text
        elif kind == "acrostic":
            self.letter = text
            after = self.verses[-1].number if self.verses else "0"
            self.letters.append(AcrosticLetter(text, after))
        elif kind == "speaker":
            self.speaker = text

    def walk(self, items: list[dict[str, Any]] | None, redletter: bool) -> None:
        """Read the items of a paragraph in order."""
        for item in items or ():
            if not isinstance(item, dict):
                continue
            attrs = item.get("attrs") or {}
            charrole = USFMCHARS.get(attrs.get("style"))
            if isnote(item):
                if self.verses:
                    self.verses[-1].notes.append(jsonnote(item, self.verses[-1].number))
            elif item.get("name") == "verse" and "number" in attrs:
                self.startverse(str(attrs["number"]))
            elif "text" in item:
                self.addtext(str(item["text"]), redletter)
            elif charrole == "interlude":
                self.hasinterlude = True
                if self.verses:
                    self.verses[-1].interlude = True
                    if self.verses[-1].number not in self.positions:
                        self.positions.append(self.verses[-1].number)
            else:
                self.walk(item.get("items"), redletter or charrole == "redletter")

    def startverse(self, number: str) -> None:
        """Start a verse at a verse tag."""
        verse = JsonVerse(
            versenumber(number, len(self.verses)),
            not self.verses,
            self.level is None and self.fresh and not self.joined,
        )
        verse.heading, verse.letter = self.heading, self.letter
        self.heading = self.letter = None
        self.verses.append(verse)

    def addtext(self, text: str, redletter: bool) -> None:
        """Add text to the current verse. Text before the first verse is dropped."""
        if not self.verses:
            return
        verse = self.verses[-1]
        verse.text.append(text)
        if not text.strip():
            if self.level is not None and verse.linepara == self.index:
                verse.lines[-1][1].append(text)
            return

        self.fresh = False
        verse.redletter = verse.redletter or redletter
        if self.level is None:
            (verse.after if verse.lines else verse.before).append(text)
            return

        # each poetry paragraph is a new line for the verse that's current
        if verse.linepara != self.index:
            verse.linepara = self.index
            if self.speaker:
                verse.speakers.append(SpeakerLabel(self.speaker, len(verse.lines)))
                self.speaker = None
            verse.lines.append([self.level, [], self.stanza, False])
            self.stanza = False
        verse.lines[-1][1].append(text)
        verse.lines[-1][3] = verse.lines[-1][3] or redletter


def parsejson(
    data: Any, reference: str | None = None, translation: str = "KJV"
) -> UnifiedChapter:
    """
    Convert a chapter in the standard JSON format.

    data is the decoded response or its JSON text. The chapter is a list of
    paragraphs under "content". Each paragraph has a USFM style and a list
    of items: verse tags that start a verse, text, character spans and
    footnotes. Responses wrapped in a "data" object are unwrapped. The older
    format, items named with their verse number, is read when there are no
    verse tags.

    """
    if isinstance(data, (str, bytes)):
        data = json.loads(data)
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]
    if not isinstance(data, dict):
        raise NoContentError(f"No content for {reference}")
    reference = reference or data.get("reference")
    if not reference:
        raise NoContentError("No reference in chapter data")

    content = [_ for _ in data.get("content") or () if isinstance(_, dict)]
    reader = JsonReader()
    reader.read(content)
    verses = reader.verses or oldjsonverses(data, content)
    if not verses:
        raise NoContentError(f"No verses found for {reference}")

    metadata = ChapterMetadata(
        superscription=reader.title,
        has_interlude=reader.hasinterlude,
        interlude_positions=tuple(reader.positions),
        acrostic_letters=tuple(reader.letters),
        collection_division=reader.division,
    )
    LOG.debug("Parsed %s: %d verses (json)", reference, len(verses))
    return assemble([_.verse() for _ in verses], metadata, reference, translation, "json")


def oldjsonverses(data: dict[str, Any], content: list[dict[str, Any]]) -> list[JsonVerse]:
    """Read verses from items named with their verse number."""
    items = [_ for para in content for _ in para.get("items") or ()]
    items += list(data.get("items") or ())
    verses: list[JsonVerse] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if name.isdigit() and str(item.get("text") or "").strip():
            verse = JsonVerse(name, not verses, not verses)
            verse.text.append(str(item["text"]))
            verses.append(verse)
    return verses


def parseresponse(
    data: Any,
    reference: str | None = None,
    translation: str | None = None,
    roles: dict[str, str] = CLASSROLES,
) -> UnifiedChapter:
    """
    Convert a decoded provider response.

    ESV API responses hold the chapter html in "passages". Anything else is
    read as the standard JSON format.

    """
    if isinstance(data, (str, bytes)):
        data = json.loads(data)
    if isinstance(data, dict) and "passages" in data:
        markup = "".join(str(_) for _ in data.get("passages") or ())
        reference = reference or data.get("canonical") or data.get("query") or ""
        return parse(markup, reference, translation or "ESV", roles)
    return parsejson(data, reference, translation or "KJV")


def chaptertodict(chapter: UnifiedChapter, raw: bool = False) -> dict[str, Any]:
    """Convert a chapter to a JSON ready dict with camelCase keys."""

    def camel(name: str) -> str:
        """Convert a snake_case name."""
        return re.sub(r"_([a-z])", lambda m: m.group(1).upper(), name)

    def convert(value: Any) -> Any:
        """Convert keys and drop unset optional values."""
        if isinstance(value, dict):
            return {
                camel(k): convert(v)
                for k, v in value.items()
                if v is not None and (raw or k != "raw_markup")
            }
        if isinstance(value, (list, tuple)):
            return [convert(_) for _ in value]
        return value

    return convert(asdict(chapter))


# -------------------------------------------------------------------------- #


def processfile(
    fname: str,
    reference: str,
    translation: str,
    roles: dict[str, str],
    doflat: bool,
    dojson: bool,
    doraw: bool,
    outputfile: str | None,
) -> None:
    """Convert one chapter file and write the result as JSON."""
    LOG.info("Reading %s ...", fname)
    with open(fname, "rb") as ifile:
        text = ifile.read().decode("utf_8_sig")

    LOG.info("... Processing %s ...", reference)
    if dojson:
        chapter = parseresponse(json.loads(text), reference, translation, roles)
    elif doflat:
        chapter = parseflat(text, reference, translation)
    else:
        chapter = parse(text, reference, translation, roles)
    if chapter.parse_mode in ("fallback", "flat"):
        LOG.warning("NOTE: %s was parsed in %s mode.", reference, chapter.parse_mode)

    output = json.dumps(chaptertodict(chapter, doraw), indent=2, ensure_ascii=False)
    if outputfile is None:
        print(output)
    else:
        with open(outputfile, "w", encoding="utf_8") as ofile:
            ofile.write(f"{output}\n")


def main() -> None:
    """Process our command line arguments and convert the chapter file."""
    parser = ArgumentParser(
        formatter_class=ArgumentDefaultsHelpFormatter,
        description="""
            convert Bible provider markup to a unified chapter document.
        """,
        epilog=f"""
            * Version: {META["VERSION"]} * {META["DATE"]} * This script is public domain. *
        """,
    )
    parser.add_argument("reference", help="chapter reference, e.g. 'John 3'")
    parser.add_argument("file", help="file to process", metavar="filename")
    parser.add_argument("-d", help="debug mode", action="store_true")
    parser.add_argument("-v", help="verbose output", action="store_true")
    parser.add_argument(
        "-t", help="translation id", metavar="TRANSLATION", default="NLT"
    )
    parser.add_argument("-c", help="style class config file", metavar="FILE")
    parser.add_argument(
        "-f", help="flat text input (verse numbers run into text)", action="store_true"
    )
    parser.add_argument(
        "-j", help="JSON input (standard JSON format or ESV API)", action="store_true"
    )
    parser.add_argument("-r", help="include raw verse markup", action="store_true")
    parser.add_argument("-o", help="specify output file", metavar="output_file")
    args = parser.parse_args()

    if args.v:
        LOG.setLevel(logging.INFO)
    if args.d:
        LOG.setLevel(logging.DEBUG)

    if not path.isfile(args.file):
        LOG.error("*** input file not present or not a normal file. ***")
        sysexit(1)

    roles = CLASSROLES
    if args.c is not None:
        # imported here... h2uconf imports from this module.
        from h2uconf import readconfig  # pylint: disable=import-outside-toplevel

        roles = readconfig(args.c)

    try:
        processfile(
            args.file, args.reference, args.t, roles, args.f, args.j, args.r, args.o
        )
    except (NoContentError, json.JSONDecodeError) as err:
        LOG.error("ERROR: %s", err)
        sysexit(1)


# -------------------------------------------------------------------------- #


if __name__ == "__main__":
    main()
