# -*- coding: utf-8 -*-
"""
Database clients used by the dispatch workers.

Each dispatch worker owns exactly one client for its whole lifetime (its
persistent connection). A client's submit(batch) returns on success and
raises TransientDispatchError (retry makes sense) or FatalDispatchError (it
does not); connection setup, authentication and the wire protocol stay inside
the client.

Implementations:
    Neo4jGraphClient   one Bolt session per worker, bound to the batch's space
                       (database); batches go out as parameterized Cypher
    DryRunGraphClient  appends rendered insert statements to a file

Error mapping for the Neo4j driver:
    ServiceUnavailable, SessionExpired, TransientError  -> transient
    AuthError, ClientError, DatabaseError, Neo4jError   -> fatal

Example:
    factory = Neo4jClientFactory(uri, user, password)
    client = factory()              # one per worker
    client.submit(batch)
    client.close()
    factory.close()
"""
# Standard library
from pathlib import Path
from threading import Lock
from typing import Optional, Protocol, Union

# Third-party
from neo4j import GraphDatabase
from neo4j.exceptions import (
    DriverError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)

# Local
from graph_importer.graph.cypher_builder import build_cypher
from graph_importer.graph.statement_compiler import render_batch
from graph_importer.utils.dataclasses import Batch
from graph_importer.utils.errors import FatalDispatchError, TransientDispatchError
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)


class GraphClient(Protocol):
    """Database capability consumed by the dispatch pool."""

    def submit(self, batch: Batch) -> None:
        ...

    def close(self) -> None:
        ...


# ============================================================================
# NEO4J (BOLT)
# ============================================================================

class Neo4jGraphClient:
    """
    Single-session client over a shared Neo4j driver.

    The driver is thread-safe and shared; the session is not, so each worker
    gets its own client. The session is opened on the database named by the
    batch's space. After a connectivity error the session is dropped and
    reopened lazily on the next submit.
    """

    def __init__(self, driver):
        """
        Args:
            driver: neo4j.Driver shared by all workers
        """
        self.driver = driver
        self._session = None
        self._space: Optional[str] = None

    def _get_session(self, space: str):
        if self._session is not None and self._space != space:
            self._reset_session()
        if self._session is None:
            self._session = self.driver.session(database=space)
            self._space = space
        return self._session

    def submit(self, batch: Batch) -> None:
        query, rows = build_cypher(batch)
        try:
            self._get_session(batch.space).run(query, batch=rows).consume()
        except (ServiceUnavailable, SessionExpired) as e:
            self._reset_session()
            raise TransientDispatchError(f"connection lost: {e}") from e
        except TransientError as e:
            raise TransientDispatchError(f"server busy: {e}") from e
        except Neo4jError as e:
            raise FatalDispatchError(f"statement rejected: {e}") from e
        except DriverError as e:
            self._reset_session()
            raise FatalDispatchError(f"driver error: {e}") from e

    def _reset_session(self):
        if self._session is None:
            return
        try:
            self._session.close()
        except (Neo4jError, DriverError, OSError) as e:
            logger.debug(f"Ignoring error while closing broken session: {e}")
        self._session = None
        self._space = None

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
            self._space = None


class Neo4jClientFactory:
    """
    Owns the shared driver and hands out one Neo4jGraphClient per worker.

    Usage:
        factory = Neo4jClientFactory(uri, user, password)
        pool = DispatchPool(client_factory=factory, ...)
        ...
        factory.close()
    """

    def __init__(self, uri: str, user: str, password: str, driver=None):
        """
        Args:
            uri: Bolt URI (e.g., bolt://127.0.0.1:7687)
            user: Username
            password: Password
            driver: Pre-built driver (tests); created from uri/auth when None
        """
        self.uri = uri
        self.driver = driver or GraphDatabase.driver(uri, auth=(user, password))
        logger.info(f"Connected to graph database at {uri}")

    def __call__(self) -> Neo4jGraphClient:
        return Neo4jGraphClient(self.driver)

    def close(self):
        self.driver.close()
        logger.info("Graph database connection closed")


# ============================================================================
# DRY RUN
# ============================================================================

class DryRunGraphClient:
    """
    Writes each submitted batch as one insert statement line of a text file.

    All workers share one instance (the factory returns it), so writes are
    serialized with a lock.
    """

    def __init__(self, output_path: Union[str, Path]):
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self.statements_written = 0

        # Start from an empty file for each run
        with open(self.output_path, 'w', encoding='utf-8'):
            pass
        logger.info(f"Dry run: writing statements to {self.output_path}")

    def submit(self, batch: Batch) -> None:
        statement = render_batch(batch)
        with self._lock:
            try:
                with open(self.output_path, 'a', encoding='utf-8') as f:
                    f.write(statement + ';\n')
            except OSError as e:
                raise FatalDispatchError(f"cannot write dry-run output: {e}") from e
            self.statements_written += 1

    def close(self) -> None:
        pass

    def __call__(self) -> "DryRunGraphClient":
        return self
