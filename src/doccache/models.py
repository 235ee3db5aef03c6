"""Core DocCache data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(slots=True)
class Heading:
    """Structural marker found in the main content region."""

    level: int
    text: str
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "text": self.text, "position": self.position}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Heading":
        return cls(level=int(data["level"]), text=str(data["text"]), position=int(data["position"]))


@dataclass(slots=True)
class CodeFragment:
    language: str
    text: str
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return {"language": self.language, "text": self.text, "position": self.position}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeFragment":
        return cls(
            language=str(data.get("language") or "unknown"),
            text=str(data["text"]),
            position=int(data["position"]),
        )


@dataclass(slots=True)
class ExtractionResult:
    """Clean text and structure reduced from a fetched page."""

    url: str
    title: str
    text: str
    headings: List[Heading] = field(default_factory=list)
    code_fragments: List[CodeFragment] = field(default_factory=list)
    word_count: int = 0
    extracted_at: datetime = field(default_factory=utc_now)
    used_fallback: bool = False


@dataclass(slots=True)
class Chunk:
    """Bounded span of a document's text."""

    index: int
    text: str
    heading: str | None = None
    heading_level: int | None = None
    word_count: int = 0
    has_code: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "text": self.text,
            "heading": self.heading,
            "heading_level": self.heading_level,
            "word_count": self.word_count,
            "has_code": self.has_code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        return cls(
            index=int(data["index"]),
            text=str(data["text"]),
            heading=data.get("heading"),
            heading_level=data.get("heading_level"),
            word_count=int(data["word_count"]),
            has_code=bool(data.get("has_code", False)),
        )


@dataclass(slots=True)
class Document:
    """One ingested documentation page together with its chunks."""

    id: str
    url: str
    title: str
    content: str
    headings: List[Heading]
    code_fragments: List[CodeFragment]
    categories: List[str]
    chunks: List[Chunk]
    word_count: int
    processed_at: datetime
    extracted_at: datetime | None = None

    def age(self, now: datetime | None = None) -> float:
        """Seconds elapsed since the document was processed."""
        return ((now or utc_now()) - self.processed_at).total_seconds()

    def to_dict(self, *, include_chunks: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "headings": [heading.to_dict() for heading in self.headings],
            "code_fragments": [fragment.to_dict() for fragment in self.code_fragments],
            "categories": list(self.categories),
            "word_count": self.word_count,
            "processed_at": self.processed_at.isoformat(),
            "extracted_at": self.extracted_at.isoformat() if self.extracted_at else None,
        }
        if include_chunks:
            data["chunks"] = [chunk.to_dict() for chunk in self.chunks]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], chunks: List[Chunk] | None = None) -> "Document":
        if chunks is None:
            chunks = [Chunk.from_dict(item) for item in data.get("chunks", [])]
        extracted_at = data.get("extracted_at")
        return cls(
            id=str(data["id"]),
            url=str(data["url"]),
            title=str(data["title"]),
            content=str(data["content"]),
            headings=[Heading.from_dict(item) for item in data.get("headings", [])],
            code_fragments=[CodeFragment.from_dict(item) for item in data.get("code_fragments", [])],
            categories=[str(item) for item in data.get("categories", [])],
            chunks=chunks,
            word_count=int(data["word_count"]),
            processed_at=_parse_timestamp(data["processed_at"]),
            extracted_at=_parse_timestamp(extracted_at) if extracted_at else None,
        )


@dataclass(slots=True)
class SearchIndexEntry:
    """In-memory projection of a document used for listings and stats."""

    doc_id: str
    title: str
    url: str
    categories: List[str]
    headings: List[str]
    word_count: int
    chunk_count: int
    last_updated: datetime

    @classmethod
    def from_document(cls, document: Document) -> "SearchIndexEntry":
        return cls(
            doc_id=document.id,
            title=document.title,
            url=document.url,
            categories=list(document.categories),
            headings=[heading.text for heading in document.headings],
            word_count=document.word_count,
            chunk_count=len(document.chunks),
            last_updated=document.processed_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "title": self.title,
            "url": self.url,
            "categories": list(self.categories),
            "headings": list(self.headings),
            "word_count": self.word_count,
            "chunk_count": self.chunk_count,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchIndexEntry":
        return cls(
            doc_id=str(data["doc_id"]),
            title=str(data["title"]),
            url=str(data["url"]),
            categories=[str(item) for item in data.get("categories", [])],
            headings=[str(item) for item in data.get("headings", [])],
            word_count=int(data["word_count"]),
            chunk_count=int(data.get("chunk_count", 0)),
            last_updated=_parse_timestamp(data["last_updated"]),
        )
