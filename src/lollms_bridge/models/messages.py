"""Chat message data models."""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_serializer

# Caller-side bookkeeping fields that never go over the wire
BOOKKEEPING_FIELDS = frozenset({"id", "start_time", "model", "skip_in_prompt"})


class TextPart(BaseModel):
    """Text content part of a message."""

    model_config = ConfigDict(extra="allow")

    type: Literal["text"] = "text"
    text: str


class ImageUrl(BaseModel):
    """Image reference, either a remote URL or a ``data:`` URL."""

    model_config = ConfigDict(extra="allow")

    url: str
    detail: str | None = None

    @model_serializer(mode="wrap")
    def _omit_default_detail(self, handler):
        data = handler(self)
        if data.get("detail") is None:
            data.pop("detail", None)
        return data


class ImageUrlPart(BaseModel):
    """Image content part of a message (OpenAI format)."""

    model_config = ConfigDict(extra="allow")

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


MessagePart = Annotated[
    Union[TextPart, ImageUrlPart],
    Field(discriminator="type"),
]


class ChatMessage(BaseModel):
    """One message of a conversation as kept in caller-side history.

    Unknown fields are preserved and forwarded to the server unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    role: Literal["user", "assistant", "system"]
    content: str | list[MessagePart]

    id: str | None = None
    start_time: float | None = Field(default=None, alias="startTime")
    model: str | None = None
    skip_in_prompt: bool = Field(default=False, alias="skipInPrompt")

    def text(self) -> str:
        """Return the textual content, joining text parts with newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if isinstance(part, TextPart))

    def images(self) -> list[str]:
        """Return the base64 payloads of inline ``data:`` image parts."""
        if isinstance(self.content, str):
            return []
        images = []
        for part in self.content:
            if isinstance(part, ImageUrlPart) and part.image_url.url.startswith("data:"):
                _, _, payload = part.image_url.url.partition(",")
                images.append(payload)
        return images

    def to_wire(self) -> dict[str, Any]:
        """Serialize for an OpenAI-compatible payload, dropping bookkeeping fields."""
        return self.model_dump(exclude=set(BOOKKEEPING_FIELDS))


def prompt_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Return the messages that belong in the prompt, in their original order."""
    return [message for message in messages if not message.skip_in_prompt]
