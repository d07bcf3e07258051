"""Pydantic models for transcript log entries.

Every line of a session log decodes to exactly one of the entry models below,
keyed by its ``type`` field, or to a ``ParseFailure`` marker. Field names follow
the producer's JSON (camelCase) so that ``model_dump()`` round-trips the line.

Unknown extra keys are preserved on every model: producers add fields between
releases and those must not turn a known variant into a failure. Unknown entry
*types* are not tolerated here; they decode to ``ParseFailure`` and it is the
classifier that decides how known types participate in the tree.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter


class _Model(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


# ── Content blocks ──────────────────────────────────────────────────

class TextContent(_Model):
    type: Literal["text"]
    text: str


class ThinkingContent(_Model):
    type: Literal["thinking"]
    thinking: str
    signature: Optional[str] = None


class RedactedThinkingContent(_Model):
    type: Literal["redacted_thinking"]
    data: str = ""


class ToolUseContent(_Model):
    type: Literal["tool_use"]
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultContent(_Model):
    type: Literal["tool_result"]
    tool_use_id: str
    content: Optional[Union[str, list[Any]]] = None
    is_error: Optional[bool] = None


class ImageContent(_Model):
    type: Literal["image"]
    source: dict[str, Any] = Field(default_factory=dict)


class DocumentContent(_Model):
    type: Literal["document"]
    source: dict[str, Any] = Field(default_factory=dict)


class UnknownContent(_Model):
    """A content block of a type this package does not model yet."""

    type: str


_CONTENT_MODELS: dict[str, type[_Model]] = {
    "text": TextContent,
    "thinking": ThinkingContent,
    "redacted_thinking": RedactedThinkingContent,
    "tool_use": ToolUseContent,
    "tool_result": ToolResultContent,
    "image": ImageContent,
    "document": DocumentContent,
}


def _content_tag(value: Any) -> str:
    if isinstance(value, str):
        return "string"
    tag = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return tag if tag in _CONTENT_MODELS else "unknown"


ContentBlock = Annotated[
    Union[
        Annotated[TextContent, Tag("text")],
        Annotated[ThinkingContent, Tag("thinking")],
        Annotated[RedactedThinkingContent, Tag("redacted_thinking")],
        Annotated[ToolUseContent, Tag("tool_use")],
        Annotated[ToolResultContent, Tag("tool_result")],
        Annotated[ImageContent, Tag("image")],
        Annotated[DocumentContent, Tag("document")],
        Annotated[UnknownContent, Tag("unknown")],
    ],
    Discriminator(_content_tag),
]

# User content lists occasionally carry bare strings next to typed blocks.
UserContentItem = Annotated[
    Union[
        Annotated[str, Tag("string")],
        Annotated[TextContent, Tag("text")],
        Annotated[ThinkingContent, Tag("thinking")],
        Annotated[RedactedThinkingContent, Tag("redacted_thinking")],
        Annotated[ToolUseContent, Tag("tool_use")],
        Annotated[ToolResultContent, Tag("tool_result")],
        Annotated[ImageContent, Tag("image")],
        Annotated[DocumentContent, Tag("document")],
        Annotated[UnknownContent, Tag("unknown")],
    ],
    Discriminator(_content_tag),
]


class UserMessage(_Model):
    role: Literal["user"]
    content: Union[str, list[UserContentItem]]


class AssistantMessage(_Model):
    role: Literal["assistant"]
    content: list[ContentBlock]
    id: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[dict[str, Any]] = None
    stop_reason: Optional[str] = None


# ── Structural entries ──────────────────────────────────────────────

class _StructuralEntry(_Model):
    uuid: str
    parentUuid: Optional[str]
    sessionId: str
    timestamp: str
    isSidechain: bool
    agentId: Optional[str] = None
    cwd: Optional[str] = None
    version: Optional[str] = None
    gitBranch: Optional[str] = None
    userType: Optional[str] = None
    isMeta: Optional[bool] = None
    slug: Optional[str] = None


class UserEntry(_StructuralEntry):
    type: Literal["user"]
    message: UserMessage
    # Structured result of the tool call this entry answers; shape depends on the tool.
    toolUseResult: Any = None


class AssistantEntry(_StructuralEntry):
    type: Literal["assistant"]
    message: AssistantMessage
    requestId: Optional[str] = None


class SystemEntry(_StructuralEntry):
    type: Literal["system"]
    content: Optional[str] = None
    subtype: Optional[str] = None
    level: Optional[str] = None
    toolUseID: Optional[str] = None


# ── Metadata entries ────────────────────────────────────────────────

class SummaryEntry(_Model):
    type: Literal["summary"]
    summary: str
    leafUuid: str


class FileHistorySnapshotEntry(_Model):
    type: Literal["file-history-snapshot"]
    messageId: str
    snapshot: dict[str, Any] = Field(default_factory=dict)
    isSnapshotUpdate: bool = False


class QueueOperationEntry(_Model):
    type: Literal["queue-operation"]
    operation: str
    timestamp: str
    sessionId: str
    content: Any = None


class ProgressEntry(_Model):
    type: Literal["progress"]
    data: dict[str, Any] = Field(default_factory=dict)
    toolUseID: Optional[str] = None
    parentToolUseID: Optional[str] = None


class CustomTitleEntry(_Model):
    type: Literal["custom-title"]
    customTitle: str
    sessionId: str


class AgentNameEntry(_Model):
    type: Literal["agent-name"]
    agentName: str
    sessionId: str


LogEntry = Annotated[
    Union[
        UserEntry,
        AssistantEntry,
        SystemEntry,
        SummaryEntry,
        FileHistorySnapshotEntry,
        QueueOperationEntry,
        ProgressEntry,
        CustomTitleEntry,
        AgentNameEntry,
    ],
    Field(discriminator="type"),
]

StructuralEntry = Union[UserEntry, AssistantEntry, SystemEntry]

ENTRY_ADAPTER: TypeAdapter[Any] = TypeAdapter(LogEntry)


class ParseFailure(_Model):
    """Inline marker for a line that is valid JSON but matches no entry model."""

    type: Literal["x-error"] = "x-error"
    lineNumber: int
    line: str
    reason: str = ""


DecodedEntry = Union[
    UserEntry,
    AssistantEntry,
    SystemEntry,
    SummaryEntry,
    FileHistorySnapshotEntry,
    QueueOperationEntry,
    ProgressEntry,
    CustomTitleEntry,
    AgentNameEntry,
    ParseFailure,
]


def entry_models() -> tuple[type[BaseModel], ...]:
    """Every model in the decodable ``LogEntry`` union, in declaration order."""
    union = get_args(LogEntry)[0]
    return tuple(get_args(union))


def entry_type_tag(model: type[BaseModel]) -> str:
    annotation = model.model_fields["type"].annotation
    return get_args(annotation)[0]
