"""
Quote persistence.

`QuoteStorage` is what the routes depend on. `QuoteRepository` implements it
on top of a `PoolConnector`: one parameterized statement per call, no
transactions.

Schema comes from `migrations/0001_create_quotes.sql`:
- quotes(id bigserial, author text, quote text)
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError

from core.db import STORE_ERRORS, PoolConnector, rows_affected

from .errors import ExecFailureError, QueryFailureError, QuoteNotFoundError
from .schemas import Quote, QuoteFilter

MAX_QUOTE_ID = 2**63 - 1

INSERT_QUOTE_SQL = """
    INSERT INTO quotes (author, quote)
    VALUES ($1, $2)
"""

SELECT_QUOTES_SQL = """
    SELECT id, author, quote
    FROM quotes
"""

SELECT_RANDOM_QUOTE_SQL = """
    SELECT id, author, quote
    FROM quotes
    ORDER BY random()
    LIMIT 1
"""

DELETE_QUOTE_SQL = "DELETE FROM quotes WHERE id = $1"


class QuoteStorage(Protocol):
    async def add(self, quote: Quote) -> None:
        ...

    async def list(self, filters: QuoteFilter) -> list[Quote]:
        ...

    async def get_random(self) -> Quote:
        ...

    async def delete(self, quote_id: str) -> None:
        ...


def parse_quote_id(raw: str) -> int | None:
    """
    Parse a path identifier. Returns None for anything that cannot name a row
    (non-decimal text, zero, or outside the BIGINT range).
    """
    text = raw or ""
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    if value < 1 or value > MAX_QUOTE_ID:
        return None
    return value


def _decode(row: dict) -> Quote:
    return Quote.model_validate(row, strict=True)


class QuoteRepository:
    def __init__(self, conn: PoolConnector, logger: logging.Logger) -> None:
        self.conn = conn
        self.log = logger

    async def add(self, quote: Quote) -> None:
        self.log.debug("quote_add_started")
        try:
            await self.conn.execute(INSERT_QUOTE_SQL, quote.author, quote.quote)
        except STORE_ERRORS as exc:
            self.log.error("quote_add_failed error=%r", exc)
            raise ExecFailureError("failed to add quote") from exc
        self.log.debug("quote_add_finished")

    async def list(self, filters: QuoteFilter) -> list[Quote]:
        self.log.debug("quote_list_started")
        sql = SELECT_QUOTES_SQL
        args: list[str] = []
        if filters.author:
            sql += " WHERE author = $1"
            args.append(filters.author)

        self.log.debug("executing query=%r args=%r", " ".join(sql.split()), args)
        try:
            rows = await self.conn.fetch(sql, *args)
        except STORE_ERRORS as exc:
            self.log.error("quote_list_failed error=%r", exc)
            raise QueryFailureError("failed to fetch quotes") from exc

        quotes: list[Quote] = []
        for row in rows:
            try:
                quotes.append(_decode(row))
            except ValidationError as exc:
                self.log.error("quote_row_decode_failed row=%r error=%s", row, exc)
                raise QueryFailureError("failed to decode quote row") from exc

        self.log.debug("quote_list_finished count=%s", len(quotes))
        return quotes

    async def get_random(self) -> Quote:
        self.log.debug("quote_random_started")
        try:
            row = await self.conn.fetchrow(SELECT_RANDOM_QUOTE_SQL)
        except STORE_ERRORS as exc:
            self.log.error("quote_random_failed error=%r", exc)
            raise QueryFailureError("failed to fetch random quote") from exc

        if row is None:
            self.log.warning("quote_random_empty no quotes in store")
            raise QuoteNotFoundError()

        try:
            quote = _decode(row)
        except ValidationError as exc:
            self.log.error("quote_row_decode_failed row=%r error=%s", row, exc)
            raise QueryFailureError("failed to decode quote row") from exc

        self.log.debug("quote_random_finished quote_id=%s", quote.id)
        return quote

    async def delete(self, quote_id: str) -> None:
        self.log.debug("quote_delete_started id=%r", quote_id)
        parsed_id = parse_quote_id(quote_id)
        if parsed_id is None:
            self.log.warning("quote_delete_invalid_id id=%r", quote_id)
            raise QuoteNotFoundError()

        try:
            command_tag = await self.conn.execute(DELETE_QUOTE_SQL, parsed_id)
        except STORE_ERRORS as exc:
            self.log.error("quote_delete_failed id=%s error=%r", parsed_id, exc)
            raise ExecFailureError("failed to delete quote") from exc

        if rows_affected(command_tag) == 0:
            self.log.warning("quote_delete_not_found id=%s", parsed_id)
            raise QuoteNotFoundError()

        self.log.debug("quote_delete_finished id=%s", parsed_id)
