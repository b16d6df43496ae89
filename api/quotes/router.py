"""
Quote API endpoints.

Storage errors are turned into status codes here. Response bodies only carry
generic messages; the detail stays in the server log.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from .errors import QuoteNotFoundError, QuoteStorageError
from .repository import QuoteStorage
from .schemas import CreateQuoteRequest, MessageResponse, Quote, QuoteFilter

logger = logging.getLogger(__name__)

router = APIRouter()


def get_storage(request: Request) -> QuoteStorage:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise RuntimeError("Quote storage is not initialized. Check the app lifespan.")
    return storage


@router.post("/quotes", status_code=status.HTTP_201_CREATED)
async def add_quote(
    request: CreateQuoteRequest,
    storage: QuoteStorage = Depends(get_storage),
) -> MessageResponse:
    logger.info("add_quote_started")
    try:
        await storage.add(Quote(author=request.author, quote=request.quote))
    except QuoteStorageError as exc:
        logger.error("add_quote_failed error=%r cause=%r", exc, exc.__cause__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add quote.",
        ) from exc

    logger.info("add_quote_finished")
    return MessageResponse(message="Quote was added successfully")


@router.get("/quotes")
async def list_quotes(
    author: str = Query(default=""),
    storage: QuoteStorage = Depends(get_storage),
) -> list[Quote]:
    logger.info("list_quotes_started author=%r", author)
    try:
        quotes = await storage.list(QuoteFilter(author=author))
    except QuoteStorageError as exc:
        logger.error("list_quotes_failed error=%r cause=%r", exc, exc.__cause__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch quotes.",
        ) from exc

    logger.info("list_quotes_finished count=%s", len(quotes))
    return quotes


@router.get("/quotes/random")
async def random_quote(
    storage: QuoteStorage = Depends(get_storage),
) -> Quote:
    logger.info("random_quote_started")
    try:
        quote = await storage.get_random()
    except QuoteNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No quotes found.",
        ) from exc
    except QuoteStorageError as exc:
        logger.error("random_quote_failed error=%r cause=%r", exc, exc.__cause__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get random quote.",
        ) from exc

    logger.info("random_quote_finished quote_id=%s", quote.id)
    return quote


@router.delete("/quotes/{quote_id}")
async def delete_quote(
    quote_id: str,
    storage: QuoteStorage = Depends(get_storage),
) -> MessageResponse:
    logger.info("delete_quote_started id=%r", quote_id)
    try:
        await storage.delete(quote_id)
    except QuoteNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Quote not found.",
        ) from exc
    except QuoteStorageError as exc:
        logger.error("delete_quote_failed id=%r error=%r cause=%r", quote_id, exc, exc.__cause__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete quote.",
        ) from exc

    logger.info("delete_quote_finished id=%r", quote_id)
    return MessageResponse(message=f"quote with id {quote_id} was deleted successfully")
