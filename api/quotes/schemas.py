"""
Quote models (entity, list filter, request/response bodies).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Assigned by the store; None until persisted.
    id: int | None = None
    author: str
    quote: str


class QuoteFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Empty means "no filter".
    author: str = ""


class CreateQuoteRequest(BaseModel):
    author: str
    quote: str


class MessageResponse(BaseModel):
    message: str
