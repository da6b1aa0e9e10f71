"""
Call results returned by the hub, and their reduction to text.

A result's ``content`` is a list of typed parts. Text parts are the
common case; anything else (images, resources, ...) is kept as an
opaque ``OtherPart`` carrying its original payload.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from mcphub_bridge.errors import RemoteToolError


@dataclass(frozen=True)
class TextPart:
    text: str
    type: str = "text"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class OtherPart:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.payload)


ContentPart = Union[TextPart, OtherPart]


def parse_part(data: Any) -> ContentPart:
    """Turn one wire content entry into a TextPart or OtherPart."""
    if isinstance(data, Mapping):
        if data.get("type") == "text":
            return TextPart(text=str(data.get("text") or ""))
        return OtherPart(type=str(data.get("type", "")), payload=dict(data))
    # Not an object at all; keep it so serialization stays faithful.
    return OtherPart(type="", payload={"value": data})


@dataclass(frozen=True)
class CallResult:
    """
    A ``tools/call`` response from the hub.

    Attributes:
        content: Parsed content parts, or None if the response had no
                 ``content`` list.
        is_error: The response's ``isError`` flag.
        raw: The full response as received, used for raw output.
    """
    content: tuple[ContentPart, ...] | None
    is_error: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CallResult":
        content = data.get("content")
        parts = tuple(parse_part(p) for p in content) if isinstance(content, list) else None
        return cls(content=parts, is_error=bool(data.get("isError")), raw=dict(data))

    @classmethod
    def from_mcp(cls, result: Any) -> "CallResult":
        """Build from an SDK ``CallToolResult`` (any pydantic model) or a dict."""
        if isinstance(result, Mapping):
            return cls.from_dict(result)
        return cls.from_dict(result.model_dump(mode="json", by_alias=True, exclude_none=True))

    def to_dict(self) -> dict[str, Any]:
        return dict(self.raw)

    def raise_for_error(self) -> "CallResult":
        if self.is_error:
            raise RemoteToolError(f"Remote tool reported an error: {format_call_result(self)}", self)
        return self


def dump_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def format_call_result(result: CallResult) -> str:
    """
    Reduce a result to the text handed back to the host.

    A single text part is returned verbatim; any other content is
    pretty-printed JSON; no content at all prints the whole result.
    """
    content = result.content
    if content is not None and len(content) == 1 and isinstance(content[0], TextPart):
        return content[0].text
    if content is not None:
        return dump_json([part.to_dict() for part in content])
    return dump_json(result.to_dict())


def dump_raw(result: CallResult) -> str:
    """Raw mode: the entire result, untouched."""
    return dump_json(result.to_dict())
