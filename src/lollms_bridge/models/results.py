"""Result data models returned by the client."""

from typing import Literal

from pydantic import BaseModel, Field


class ModelDescriptor(BaseModel):
    """A model advertised by the backend."""

    id: str


class TokenizeResult(BaseModel):
    """Token count for a piece of text."""

    token_count: int = Field(ge=0)
    token_ids: list[int] = Field(default_factory=list)
    is_estimation: bool = False


class ContextSizeResult(BaseModel):
    """Context window size of a model."""

    context_size: int = Field(gt=0)
    is_estimation: bool = False


class ConnectionTestResult(BaseModel):
    """Outcome of a connection test."""

    success: bool
    message: str
    details: str | None = None


class ImageGenerationRequest(BaseModel):
    """Request body for the image generation endpoint.

    Unset optional fields are left to server defaults.
    """

    prompt: str
    model: str | None = None
    n: int = Field(default=1, ge=1)
    quality: Literal["standard", "hd"] | None = None
    response_format: Literal["url", "b64_json"] = "b64_json"
    size: str | None = Field(default=None, description="e.g. '1024x1024'")
    style: Literal["vivid", "natural"] | None = None


class ImageObject(BaseModel):
    """One generated image."""

    b64_json: str | None = None
    url: str | None = None
    revised_prompt: str | None = None


class ImageGenerationResponse(BaseModel):
    """Response body of the image generation endpoint."""

    created: int | None = None
    data: list[ImageObject] = Field(default_factory=list)
