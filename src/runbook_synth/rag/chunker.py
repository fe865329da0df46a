"""
Runbook chunking

Splits a markdown runbook into bounded, metadata-tagged chunks:

1. An optional YAML frontmatter block supplies title, tags and
   applicable_shapes.
2. The body is split at ``##`` headers, falling back to ``###`` headers
   inside a primary section that is too large.
3. Small sections are merged forward until they reach the minimum size;
   oversized ones are split at paragraph, then sentence, then line
   boundaries.

Fenced code blocks are atomic throughout: no split point is ever placed
inside one.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import yaml

from ..errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MIN_CHUNK_SIZE = 100
DEFAULT_MAX_CHUNK_SIZE = 2000
DEFAULT_SECTION_TITLE = "Introduction"

_FRONTMATTER_PATTERN = re.compile(
    r"\A---[ \t]*\n(?P<yaml>.*?)^---[ \t]*$\n?", re.DOTALL | re.MULTILINE
)
_FENCE_PATTERN = re.compile(r"^ {0,3}(`{3,}|~{3,})")
# A backtick fence info string may not contain backticks.
_FENCE_OPEN_PATTERN = re.compile(r"^ {0,3}(?:(`{3,})[^`]*|(~{3,}).*)$")
_HEADER_PATTERN = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

PRIMARY_LEVEL = 2
SUB_LEVEL = 3


@dataclass(frozen=True)
class Frontmatter:
    title: Optional[str] = None
    tags: tuple[str, ...] = ()
    applicable_shapes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedChunk:
    """A chunk before embedding"""

    section_title: str
    content: str
    tags: tuple[str, ...] = ()
    applicable_shapes: tuple[str, ...] = ()


@dataclass
class _Section:
    title: str
    lines: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines).strip()


class FenceTracker:
    """Line-by-line tracker of fenced code block state"""

    def __init__(self) -> None:
        self.marker: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.marker is not None

    def feed(self, line: str) -> bool:
        """Consume a line; True if it is part of a fence, delimiters included"""
        if self.marker is None:
            opener = _FENCE_OPEN_PATTERN.match(line)
            if opener:
                self.marker = opener.group(1) or opener.group(2)
                return True
            return False

        match = _FENCE_PATTERN.match(line)
        if match:
            run = match.group(1)
            if (
                run[0] == self.marker[0]
                and len(run) >= len(self.marker)
                and line.strip() == run
            ):
                self.marker = None
        return True


def has_unterminated_fence(text: str) -> bool:
    tracker = FenceTracker()
    for line in text.split("\n"):
        tracker.feed(line)
    return tracker.is_open


def _as_string_list(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [item for item in value.split(",")]
    if not isinstance(value, (list, tuple)):
        logger.debug(f"Ignoring frontmatter '{key}': expected a list, got {type(value).__name__}")
        return ()
    items = [str(item).strip() for item in value if item is not None]
    return tuple(dict.fromkeys(item for item in items if item))


def parse_frontmatter(content: str) -> tuple[Frontmatter, str]:
    """Split a document into its frontmatter and body

    Malformed YAML is logged and treated as absent metadata; the block is
    still removed from the body.
    """
    match = _FRONTMATTER_PATTERN.match(content)
    if not match:
        return Frontmatter(), content

    body = content[match.end():]
    try:
        data = yaml.safe_load(match.group("yaml"))
    except yaml.YAMLError as e:
        logger.debug(f"Ignoring malformed frontmatter: {e}")
        return Frontmatter(), body

    if not isinstance(data, dict):
        if data is not None:
            logger.debug("Ignoring frontmatter that is not a mapping")
        return Frontmatter(), body

    title = data.get("title")
    return (
        Frontmatter(
            title=str(title).strip() if title is not None else None,
            tags=_as_string_list(data.get("tags"), "tags"),
            applicable_shapes=_as_string_list(data.get("applicable_shapes"), "applicable_shapes"),
        ),
        body,
    )


def _header(line: str) -> Optional[tuple[int, str]]:
    match = _HEADER_PATTERN.match(line)
    if not match:
        return None
    return len(match.group(1)), match.group(2).strip()


def _split_at_level(lines: list[str], level: int, default_title: str) -> list[_Section]:
    """Split lines at headers of exactly `level`, ignoring fenced lines"""
    sections = [_Section(default_title)]
    tracker = FenceTracker()
    for line in lines:
        if not tracker.feed(line):
            header = _header(line)
            if header and header[0] == level:
                sections.append(_Section(header[1]))
                continue
        sections[-1].lines.append(line)
    return [section for section in sections if section.text]


def _blocks(text: str) -> list[tuple[str, bool]]:
    """Paragraphs and fenced blocks of a text, as (block, is_fence) pairs"""
    blocks: list[tuple[str, bool]] = []
    current: list[str] = []
    in_fence_block = False
    tracker = FenceTracker()

    def flush() -> None:
        block = "\n".join(current).strip("\n")
        if block.strip():
            blocks.append((block, in_fence_block))
        current.clear()

    for line in text.split("\n"):
        was_open = tracker.is_open
        is_fence_line = tracker.feed(line)
        if is_fence_line and not was_open:
            flush()
            in_fence_block = True
            current.append(line)
        elif is_fence_line:
            current.append(line)
            if not tracker.is_open:
                flush()
                in_fence_block = False
        elif not line.strip():
            flush()
        else:
            current.append(line)
    flush()
    return blocks


def _pack(pieces: Iterable[tuple[str, str]], max_size: int) -> list[str]:
    """Greedily join (piece, separator) pairs while the result stays within max_size

    Each separator is the text placed between its piece and the one before.
    """
    parts: list[str] = []
    current = ""
    for piece, separator in pieces:
        if not current:
            current = piece
        elif len(current) + len(separator) + len(piece) <= max_size:
            current = f"{current}{separator}{piece}"
        else:
            parts.append(current)
            current = piece
    if current:
        parts.append(current)
    return parts


def _hard_wrap(line: str, max_size: int) -> list[str]:
    """Cut a single over-long line, preferring whitespace"""
    parts = []
    remaining = line
    while len(remaining) > max_size:
        cut = remaining.rfind(" ", 0, max_size + 1)
        if cut <= 0:
            cut = max_size
        parts.append(remaining[:cut].rstrip())
        remaining = remaining[cut:].lstrip()
    if remaining:
        parts.append(remaining)
    return parts


def _sentences(paragraph: str) -> list[tuple[str, str]]:
    """Sentences with the separator that preceded each, newline or space"""
    sentences: list[tuple[str, str]] = []
    start = 0
    separator = ""
    for boundary in _SENTENCE_BOUNDARY.finditer(paragraph):
        sentences.append((paragraph[start:boundary.start()], separator))
        separator = "\n" if "\n" in boundary.group() else " "
        start = boundary.end()
    sentences.append((paragraph[start:], separator))
    return sentences


def _split_prose(paragraph: str, max_size: int) -> list[str]:
    """Split a non-fenced paragraph at sentences, then lines

    Line breaks survive the split; only hard-wrapped pieces of a single
    line are rejoined with spaces.
    """
    pieces: list[tuple[str, str]] = []
    for sentence, separator in _sentences(paragraph):
        if len(sentence) <= max_size:
            pieces.append((sentence, separator))
            continue
        for index, line in enumerate(sentence.split("\n")):
            line_separator = separator if index == 0 else "\n"
            wrapped = _hard_wrap(line, max_size) if len(line) > max_size else [line]
            pieces.append((wrapped[0], line_separator))
            pieces.extend((part, " ") for part in wrapped[1:])
    return _pack([(piece, sep) for piece, sep in pieces if piece.strip()], max_size)


def split_oversized(text: str, max_size: int) -> list[str]:
    """Split text into parts of at most max_size, never inside a fence

    A fenced block that alone exceeds max_size is kept whole.
    """
    if len(text) <= max_size:
        return [text]

    pieces: list[str] = []
    for block, is_fence in _blocks(text):
        if len(block) <= max_size or is_fence:
            pieces.append(block)
        else:
            pieces.extend(_split_prose(block, max_size))
    return _pack(((piece, "\n\n") for piece in pieces), max_size)


class DocumentChunker:
    """
    Parses markdown runbooks into chunks for vector storage

    Stateless apart from its size limits, so one instance may be shared
    across concurrent ingestions.
    """

    def __init__(
        self,
        min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    ):
        if max_chunk_size <= 0:
            raise ValidationError("max_chunk_size must be positive")
        if min_chunk_size < 0 or min_chunk_size > max_chunk_size:
            raise ValidationError("min_chunk_size must be between 0 and max_chunk_size")
        self.min_chunk_size = min_chunk_size
        self.max_chunk_size = max_chunk_size

    def chunk(self, content: str, source_path: str) -> list[ParsedChunk]:
        """
        Chunk a runbook into sections

        Args:
            content: Markdown text of the runbook
            source_path: Identifier of the source document

        Returns:
            Parsed chunks in document order; empty for empty or
            frontmatter-only input
        """
        if content is None or source_path is None:
            raise ValidationError("content and source_path are required")

        content = content.replace("\r\n", "\n").replace("\r", "\n")
        if not content.strip():
            return []

        frontmatter, body = parse_frontmatter(content)
        if not body.strip():
            return []

        lines = body.split("\n")
        tracker = FenceTracker()
        for line in lines:
            tracker.feed(line)
        if tracker.is_open:
            logger.debug(f"Closing unterminated code fence at end of {source_path}")
            lines.append(tracker.marker)

        sections = self._sections(lines)
        texts = self._apply_size_policy(sections)

        chunks = [
            ParsedChunk(
                section_title=title,
                content=text,
                tags=frontmatter.tags,
                applicable_shapes=frontmatter.applicable_shapes,
            )
            for title, text in texts
        ]
        logger.debug(f"Chunked {source_path} into {len(chunks)} chunk(s)")
        return chunks

    def _sections(self, lines: list[str]) -> list[_Section]:
        sections: list[_Section] = []
        for primary in _split_at_level(lines, PRIMARY_LEVEL, DEFAULT_SECTION_TITLE):
            if len(primary.text) <= self.max_chunk_size:
                sections.append(primary)
                continue
            subsections = _split_at_level(primary.lines, SUB_LEVEL, primary.title)
            sections.extend(subsections or [primary])
        return sections

    def _apply_size_policy(self, sections: list[_Section]) -> list[tuple[str, str]]:
        chunks: list[tuple[str, str]] = []
        merged_title: Optional[str] = None
        merged_text = ""

        def emit(title: str, text: str) -> None:
            for part in split_oversized(text, self.max_chunk_size):
                part = part.strip()
                if part:
                    chunks.append((title, part))

        for section in sections:
            text = section.text
            if merged_text and len(merged_text) + 2 + len(text) > self.max_chunk_size:
                emit(merged_title, merged_text)
                merged_title, merged_text = None, ""

            if merged_title is None:
                merged_title = section.title
            merged_text = f"{merged_text}\n\n{text}" if merged_text else text

            if len(merged_text) >= self.min_chunk_size:
                emit(merged_title, merged_text)
                merged_title, merged_text = None, ""

        if merged_text:
            if chunks and len(chunks[-1][1]) + 2 + len(merged_text) <= self.max_chunk_size:
                last_title, last_text = chunks.pop()
                chunks.append((last_title, f"{last_text}\n\n{merged_text}"))
            else:
                emit(merged_title, merged_text)

        return chunks
