"""
Thing repository.

This module implements the repository pattern for things, separating
data access logic from the service layer. The service layer authorizes
``owner`` before calling in; every read and write except key lookup is
scoped by it, so another owner's thing is indistinguishable from a
missing one.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, ContextManager

from psycopg2.extras import RealDictCursor

from ..errors import (
    ErrorKind,
    MalformedEntityError,
    NotFoundError,
    SelectEntityError,
    ThingsError,
)
from ..models import Metadata, Page, PageMetadata, Thing, is_valid_uuid
from ..settings import settings
from .codec import decode_metadata, encode_metadata
from .connection import get_connection, transaction
from .predicates import Predicate, combine, metadata_filter, name_filter
from .translator import ErrorTranslator, StoreErrorCode

logger = logging.getLogger("things.db.repositories")

Connect = Callable[..., ContextManager[Any]]


class ThingRepository(ABC):
    """
    Persistence contract for things.

    Every operation accepts a keyword-only ``timeout`` in seconds; a
    statement still running when it expires is cancelled and the call
    fails with the operation's generic error.
    """

    @abstractmethod
    def save(self, *things: Thing, timeout: float | None = None) -> list[Thing]:
        """Persist one or more things atomically."""

    @abstractmethod
    def update(self, thing: Thing, *, timeout: float | None = None) -> None:
        """Update name and metadata of an existing thing."""

    @abstractmethod
    def update_key(self, owner: str, id: str, key: str, *, timeout: float | None = None) -> None:
        """Rotate the key of an existing thing."""

    @abstractmethod
    def retrieve_by_id(self, owner: str, id: str, *, timeout: float | None = None) -> Thing:
        """Retrieve a single thing owned by ``owner``."""

    @abstractmethod
    def retrieve_by_key(self, key: str, *, timeout: float | None = None) -> str:
        """Return the id of the thing holding ``key``, whoever owns it."""

    @abstractmethod
    def retrieve_all(
        self,
        owner: str,
        offset: int,
        limit: int,
        name: str = "",
        metadata: Metadata | None = None,
        *,
        timeout: float | None = None,
    ) -> Page:
        """List things of ``owner`` filtered by name and metadata."""

    @abstractmethod
    def retrieve_by_channel(
        self,
        owner: str,
        channel: str,
        offset: int,
        limit: int,
        connected: bool = True,
        *,
        timeout: float | None = None,
    ) -> Page:
        """List things of ``owner`` connected (or not) to ``channel``."""

    @abstractmethod
    def remove(self, owner: str, id: str, *, timeout: float | None = None) -> None:
        """Delete a thing; deleting a missing thing is not an error."""


class PostgresThingRepository(ThingRepository):
    """
    PostgreSQL implementation of ThingRepository.

    Expects a ``things`` table (id uuid primary key, owner, name, key
    unique, metadata jsonb) and a ``connections`` table with at least
    ``thing_id`` and ``channel_id``.
    """

    COLUMNS = "id, owner, name, key, metadata"

    def __init__(
        self,
        connect: Connect = get_connection,
        translator: ErrorTranslator | None = None,
        default_timeout: float | None = None,
    ):
        self._connect = connect
        self.translator = translator or ErrorTranslator()
        if default_timeout is None and settings.statement_timeout_ms:
            default_timeout = settings.statement_timeout_ms / 1000
        self.default_timeout = default_timeout

    # --- Writes ---

    def save(self, *things: Thing, timeout: float | None = None) -> list[Thing]:
        """
        Insert all things in one transaction.

        Either every row is inserted or none is.

        Raises:
            MalformedEntityError: invalid or oversized field values
            ConflictError: duplicate id or key
            CreateEntityError: any other failure
        """
        if not things:
            return []

        deadline = self._timeout(timeout)
        with self._translated("save", ErrorKind.CREATE_ENTITY, owner=things[0].owner):
            rows = [self._to_row(thing) for thing in things]
            with self._connect(timeout=deadline) as connection:
                with transaction(connection, deadline) as cur:
                    for row in rows:
                        cur.execute(
                            """
                            INSERT INTO things (id, owner, name, key, metadata)
                            VALUES (%(id)s, %(owner)s, %(name)s, %(key)s, %(metadata)s)
                            """,
                            row,
                        )

        logger.info("Saved %d thing(s) for owner %s", len(things), things[0].owner)
        return list(things)

    def update(self, thing: Thing, *, timeout: float | None = None) -> None:
        """
        Update name and metadata of the thing matching (owner, id).

        Raises:
            NotFoundError: no such thing for this owner
            MalformedEntityError: invalid or oversized field values
            UpdateEntityError: any other failure
        """
        deadline = self._timeout(timeout)
        with self._translated("update", ErrorKind.UPDATE_ENTITY, owner=thing.owner, id=thing.id):
            if not is_valid_uuid(thing.id):
                raise NotFoundError(message=f"invalid thing id {thing.id!r}")
            row = self._to_row(thing)
            with self._connect(timeout=deadline) as connection:
                with transaction(connection, deadline) as cur:
                    cur.execute(
                        """
                        UPDATE things SET name = %(name)s, metadata = %(metadata)s
                        WHERE owner = %(owner)s AND id = %(id)s
                        """,
                        row,
                    )
                    if cur.rowcount == 0:
                        raise NotFoundError()

        logger.info("Updated thing %s", thing.id)

    def update_key(self, owner: str, id: str, key: str, *, timeout: float | None = None) -> None:
        """
        Replace the key of the thing matching (owner, id).

        Raises:
            NotFoundError: no such thing for this owner
            ConflictError: key already used by another thing
            MalformedEntityError: invalid key encoding
            UpdateEntityError: any other failure
        """
        deadline = self._timeout(timeout)
        with self._translated("update key", ErrorKind.UPDATE_ENTITY, owner=owner, id=id):
            if not is_valid_uuid(id):
                raise NotFoundError(message=f"invalid thing id {id!r}")
            with self._connect(timeout=deadline) as connection:
                with transaction(connection, deadline) as cur:
                    cur.execute(
                        "UPDATE things SET key = %(key)s WHERE owner = %(owner)s AND id = %(id)s",
                        {"key": key or None, "owner": owner, "id": id},
                    )
                    if cur.rowcount == 0:
                        raise NotFoundError()

        logger.info("Rotated key of thing %s", id)

    def remove(self, owner: str, id: str, *, timeout: float | None = None) -> None:
        """
        Delete the thing matching (owner, id).

        Raises:
            RemoveEntityError: the delete statement failed
        """
        # Nothing can match a malformed id
        if not is_valid_uuid(id):
            logger.debug("Skipping remove of malformed thing id %r", id)
            return

        deadline = self._timeout(timeout)
        with self._translated("remove", ErrorKind.REMOVE_ENTITY, owner=owner, id=id):
            with self._connect(timeout=deadline) as connection:
                with transaction(connection, deadline) as cur:
                    cur.execute(
                        "DELETE FROM things WHERE id = %(id)s AND owner = %(owner)s",
                        {"id": id, "owner": owner},
                    )
                    removed = cur.rowcount

        if removed:
            logger.info("Removed thing %s", id)

    # --- Reads ---

    def retrieve_by_id(self, owner: str, id: str, *, timeout: float | None = None) -> Thing:
        """
        Raises:
            NotFoundError: absent, owned by someone else, or malformed id
            SelectEntityError: any other failure
        """
        deadline = self._timeout(timeout)
        with self._translated(
            "retrieve by id", ErrorKind.SELECT_ENTITY, self.MALFORMED_ID_IS_MISSING, owner=owner, id=id
        ):
            if not is_valid_uuid(id):
                raise NotFoundError(message=f"invalid thing id {id!r}")
            with self._connect(timeout=deadline) as connection:
                with transaction(connection, deadline, RealDictCursor) as cur:
                    cur.execute(
                        f"SELECT {self.COLUMNS} FROM things WHERE id = %(id)s AND owner = %(owner)s",
                        {"id": id, "owner": owner},
                    )
                    row = cur.fetchone()
            if row is None:
                raise NotFoundError()
            return self._to_thing(row)

    def retrieve_by_key(self, key: str, *, timeout: float | None = None) -> str:
        """
        Raises:
            NotFoundError: no thing holds this key
            SelectEntityError: any other failure
        """
        deadline = self._timeout(timeout)
        with self._translated("retrieve by key", ErrorKind.SELECT_ENTITY):
            if not key:
                raise NotFoundError(message="empty key")
            with self._connect(timeout=deadline) as connection:
                with transaction(connection, deadline, RealDictCursor) as cur:
                    cur.execute("SELECT id FROM things WHERE key = %(key)s", {"key": key})
                    row = cur.fetchone()
            if row is None:
                raise NotFoundError()
            return str(row["id"])

    def retrieve_all(
        self,
        owner: str,
        offset: int,
        limit: int,
        name: str = "",
        metadata: Metadata | None = None,
        *,
        timeout: float | None = None,
    ) -> Page:
        """
        Raises:
            MalformedEntityError: negative offset or limit
            SelectEntityError: query or metadata encoding failure
        """
        with self._translated("retrieve all", ErrorKind.SELECT_ENTITY, owner=owner):
            self._check_window(offset, limit)
            try:
                predicate = combine(
                    Predicate("owner = %(owner)s", {"owner": owner}),
                    name_filter(name),
                    metadata_filter(metadata),
                )
            except MalformedEntityError as exc:
                raise SelectEntityError(exc) from exc

            query = f"""
                SELECT {self.COLUMNS} FROM things
                WHERE {predicate.clause}
                ORDER BY id LIMIT %(limit)s OFFSET %(offset)s
            """
            count_query = f"SELECT COUNT(*) AS total FROM things WHERE {predicate.clause}"
            return self._page(query, count_query, predicate.params, offset, limit, timeout)

    def retrieve_by_channel(
        self,
        owner: str,
        channel: str,
        offset: int,
        limit: int,
        connected: bool = True,
        *,
        timeout: float | None = None,
    ) -> Page:
        """
        Things connected to ``channel``, or with ``connected=False`` the
        owner's things that are not.

        Raises:
            NotFoundError: malformed channel id
            MalformedEntityError: negative offset or limit
            SelectEntityError: any other failure
        """
        with self._translated(
            "retrieve by channel",
            ErrorKind.SELECT_ENTITY,
            self.MALFORMED_ID_IS_MISSING,
            owner=owner,
            channel=channel,
        ):
            if not is_valid_uuid(channel):
                raise NotFoundError(message=f"invalid channel id {channel!r}")
            self._check_window(offset, limit)

            if connected:
                source = """
                    FROM things th
                    INNER JOIN connections conn ON th.id = conn.thing_id
                    WHERE th.owner = %(owner)s AND conn.channel_id = %(channel)s
                """
            else:
                source = """
                    FROM things th
                    WHERE th.owner = %(owner)s AND NOT EXISTS (
                        SELECT 1 FROM connections conn
                        WHERE conn.thing_id = th.id AND conn.channel_id = %(channel)s
                    )
                """

            query = f"""
                SELECT th.id, th.owner, th.name, th.key, th.metadata
                {source}
                ORDER BY th.id LIMIT %(limit)s OFFSET %(offset)s
            """
            count_query = f"SELECT COUNT(*) AS total {source}"
            params = {"owner": owner, "channel": channel}
            return self._page(query, count_query, params, offset, limit, timeout)

    # --- Helpers ---

    # Lookups treat an id the store cannot parse as a missing row
    MALFORMED_ID_IS_MISSING = {StoreErrorCode.INVALID_ENCODING: ErrorKind.NOT_FOUND}

    def _page(
        self,
        query: str,
        count_query: str,
        params: dict[str, Any],
        offset: int,
        limit: int,
        timeout: float | None,
    ) -> Page:
        deadline = self._timeout(timeout)
        # Page and count are two reads; a concurrent write may skew total
        with self._connect(timeout=deadline) as connection:
            with transaction(connection, deadline, RealDictCursor) as cur:
                cur.execute(query, {**params, "limit": limit, "offset": offset})
                rows = cur.fetchall()
                cur.execute(count_query, params)
                total = cur.fetchone()["total"]

        return Page(
            things=[self._to_thing(row) for row in rows],
            page_metadata=PageMetadata(total=total, offset=offset, limit=limit),
        )

    def _timeout(self, timeout: float | None) -> float | None:
        return self.default_timeout if timeout is None else timeout

    @staticmethod
    def _check_window(offset: int, limit: int) -> None:
        if offset < 0 or limit < 0:
            raise MalformedEntityError(message=f"invalid page window offset={offset} limit={limit}")

    @contextmanager
    def _translated(
        self,
        operation: str,
        fallback: ErrorKind,
        overrides: dict[StoreErrorCode, ErrorKind] | None = None,
        **context: str,
    ):
        """
        Translate failures raised in the block into logged domain errors.

        Domain errors are logged and re-raised unchanged; anything else is
        classified and re-raised as a ThingsError chained to the original.
        """
        try:
            yield
        except ThingsError as error:
            level = logging.INFO if error.kind is ErrorKind.NOT_FOUND else logging.WARNING
            logger.log(level, "Failed to %s %s: %s", operation, context, error)
            raise
        except Exception as exc:
            error = self.translator.to_domain(exc, fallback, overrides)
            if error.kind is fallback:
                logger.exception("Failed to %s %s", operation, context)
            else:
                logger.warning("Failed to %s %s: %s", operation, context, error.kind.name)
            raise error from exc

    @staticmethod
    def _to_row(thing: Thing) -> dict[str, Any]:
        return {
            "id": thing.id,
            "owner": thing.owner,
            "name": thing.name,
            "key": thing.key or None,
            "metadata": encode_metadata(thing.metadata),
        }

    @staticmethod
    def _to_thing(row: dict[str, Any]) -> Thing:
        try:
            metadata = decode_metadata(row["metadata"])
        except MalformedEntityError as exc:
            raise SelectEntityError(exc) from exc
        return Thing(
            id=str(row["id"]),
            owner=row["owner"],
            name=row["name"] or "",
            key=row["key"] or "",
            metadata=metadata,
        )
