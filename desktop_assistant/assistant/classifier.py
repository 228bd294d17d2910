"""
Response Classifier - Turns a response payload into a typed result.

Backends answer some queries with a single line of formatted text, for
example a top search result or a video. The classifier recognises these
shapes so the presentation layer can render a proper card:

    "<title>" (<attribution> - <source>)\\n<snippet>      -> SearchResult
    <title> [<channel>] (<url>)\\n---\\n<description>     -> VideoResult

Anything else is PlainText (a bare answer) or Generic (no text at all).
Classification never fails.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Union
from urllib.parse import parse_qs, urlparse

from ..backend.base import ResponsePayload

logger = logging.getLogger(__name__)

# The snippet separator is either a newline or the two-character escape
# "\n" that some backends leave in their text.
SEARCH_RESULT_PATTERN = re.compile(
    r'"(.*)" \(\s?(.+) - (.+?)\s?\)(?:(?:\\n|\n)([\s\S]+))?'
)
VIDEO_RESULT_PATTERN = re.compile(
    r'(.+) \[(.+)\] \(\s?(.+?)\s?\)(?:\n---\n([\s\S]+))?'
)

VIDEO_HOSTS = ("youtube.com", "www.youtube.com", "m.youtube.com")
THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/0.jpg"


# ==================== Results ====================

@dataclass(frozen=True)
class ClassifiedResult:
    """Base class of all classification results."""
    kind: ClassVar[str] = "result"


@dataclass(frozen=True)
class PlainText(ClassifiedResult):
    body: str
    kind: ClassVar[str] = "plain-text"


@dataclass(frozen=True)
class SearchResult(ClassifiedResult):
    title: str
    attribution: str
    source: str
    snippet: Optional[str] = None
    kind: ClassVar[str] = "search-result"


@dataclass(frozen=True)
class VideoResult(ClassifiedResult):
    title: str
    channel: str
    url: str
    description: Optional[str] = None
    kind: ClassVar[str] = "video-result"

    @property
    def video_id(self) -> Optional[str]:
        values = parse_qs(urlparse(self.url).query).get("v")
        return values[0] if values else None

    @property
    def thumbnail_url(self) -> Optional[str]:
        video_id = self.video_id
        return THUMBNAIL_URL.format(video_id=video_id) if video_id else None


@dataclass(frozen=True)
class Generic(ClassifiedResult):
    raw: Any = None
    kind: ClassVar[str] = "generic"


@dataclass(frozen=True)
class Suggestion:
    """A follow-up chip: what to show and what to ask when it is picked."""
    label: str
    follow_up_query: str


# ==================== Classification ====================

def is_video_watch_url(url: str) -> bool:
    """True for https://{,www.,m.}youtube.com/watch?v=<id> URLs."""
    parsed = urlparse(url)
    return (
        parsed.scheme == "https"
        and parsed.netloc.lower() in VIDEO_HOSTS
        and parsed.path == "/watch"
        and bool(parse_qs(parsed.query).get("v"))
    )


def _unescape(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return text.replace("\\n", "\n").strip() or None


def _payload_text(payload: Any) -> Optional[str]:
    if isinstance(payload, ResponsePayload):
        return payload.text
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        text = payload.get("text")
        return text if isinstance(text, str) else None
    return None


def _payload_raw(payload: Any) -> Any:
    if isinstance(payload, ResponsePayload):
        return payload.raw if payload.raw is not None else payload.text
    return payload


def match_video(body: str) -> Optional[VideoResult]:
    match = VIDEO_RESULT_PATTERN.fullmatch(body)
    if match is None:
        return None

    title, channel, url, description = match.groups()
    if not is_video_watch_url(url):
        return None
    return VideoResult(title=title, channel=channel, url=url, description=_unescape(description))


def match_search(body: str) -> Optional[SearchResult]:
    # The whole body has to be the search result, not just a part of it
    match = SEARCH_RESULT_PATTERN.fullmatch(body)
    if match is None:
        return None

    title, attribution, source, snippet = match.groups()
    return SearchResult(title=title, attribution=attribution, source=source, snippet=_unescape(snippet))


def classify(payload: Union[ResponsePayload, dict, str, None]) -> ClassifiedResult:
    """
    Classify a response payload.

    The video shape is checked first: a video line can also satisfy the
    looser search-result shape.

    Args:
        payload: ResponsePayload, a {"text": ...} dict or a bare string

    Returns:
        VideoResult, SearchResult, PlainText or Generic
    """
    text = _payload_text(payload)

    if text is None or not text.strip():
        return Generic(raw=_payload_raw(payload))

    body = text.strip()
    result = match_video(body) or match_search(body) or PlainText(body=body)
    logger.debug(f"Classified response as {result.kind}")
    return result


def extract_suggestions(payload: Any) -> list[Suggestion]:
    """
    Extract follow-up suggestions from the payload's suggestion list.

    Entries without a label are skipped; a missing follow-up query falls
    back to the label itself.
    """
    if isinstance(payload, ResponsePayload):
        items = payload.suggestions
    elif isinstance(payload, dict):
        items = payload.get("suggestions") or []
    else:
        items = []

    suggestions = []
    for item in items:
        if isinstance(item, Suggestion):
            suggestions.append(item)
            continue
        if not isinstance(item, dict):
            continue

        label = str(item.get("label") or "").strip()
        if not label:
            continue
        query = item.get("follow_up_query") or item.get("query") or label
        suggestions.append(Suggestion(label=label, follow_up_query=str(query)))

    return suggestions
