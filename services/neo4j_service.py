"""
Neo4j Service Module

Connection management and query execution for the Neo4j edge backend.

Features:
- Connection pooling with configurable pool size
- Health check monitoring
- Read/write query helpers returning plain dicts and write counters
"""

import logging
import os
from contextlib import contextmanager
from typing import Any

from neo4j import Driver, GraphDatabase, basic_auth
from neo4j.exceptions import AuthError, ServiceUnavailable
from neo4j.time import Date, DateTime, Time
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class Neo4jConfig(BaseModel):
    """Configuration for Neo4j connection."""

    uri: str = Field(default="bolt://localhost:7687", description="Neo4j connection URI")
    user: str = Field(default="neo4j", description="Neo4j username")
    password: str = Field(default="password", description="Neo4j password")
    database: str = Field(default="neo4j", description="Database name")
    max_pool_size: int = Field(default=10, ge=1, le=100, description="Maximum connection pool size")
    max_connection_lifetime: int = Field(
        default=3600, ge=60, description="Max lifetime of connections in seconds"
    )
    connection_timeout: int = Field(default=30, ge=1, description="Connection timeout in seconds")
    max_transaction_retry_time: int = Field(
        default=30, ge=1, description="Max retry time for transactions in seconds"
    )


class Neo4jService:
    """Service for managing Neo4j database connections and operations."""

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        user: str = "neo4j",
        password: str = "password",
        config: Neo4jConfig | None = None,
    ):
        """
        Initialize Neo4j service.

        Raises:
            ValueError: If default password used in production environment
        """
        self.config = config or Neo4jConfig(uri=uri, user=user, password=password)

        if os.getenv("ENV", "development") == "production" and self.config.password == "password":
            raise ValueError(
                "Default password 'password' is not allowed in production. "
                "Set NEO4J_PASSWORD environment variable."
            )

        self.driver: Driver | None = None
        self._connected = False

    def connect(self) -> bool:
        """
        Establish connection to Neo4j database.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            if self.driver is not None:
                self.driver.close()

            self.driver = GraphDatabase.driver(
                self.config.uri,
                auth=basic_auth(self.config.user, self.config.password),
                max_connection_pool_size=self.config.max_pool_size,
                max_connection_lifetime=self.config.max_connection_lifetime,
                connection_timeout=self.config.connection_timeout,
                max_transaction_retry_time=self.config.max_transaction_retry_time,
            )
            self.driver.verify_connectivity()
            self._connected = True
            logger.info(f"Connected to Neo4j at {self.config.uri}")
            return True

        except ServiceUnavailable as e:
            logger.error(f"Neo4j service unavailable: {e}")
        except AuthError as e:
            logger.error(f"Neo4j authentication failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error connecting to Neo4j: {e}")

        self._connected = False
        return False

    def close(self) -> None:
        """Close Neo4j connection and cleanup resources."""
        if self.driver:
            self.driver.close()
            self._connected = False
            logger.info("Neo4j connection closed")

    def is_connected(self) -> bool:
        return self._connected and self.driver is not None

    def health_check(self) -> dict[str, Any]:
        """
        Perform health check on Neo4j connection.

        Returns:
            Dictionary with health check results
        """
        health_status: dict[str, Any] = {
            "service": "neo4j",
            "connected": self._connected,
            "uri": self.config.uri,
            "status": "unhealthy",
        }

        if not self.is_connected():
            health_status["error"] = "Not connected to Neo4j"
            return health_status

        try:
            with self.session() as session:
                if session.run("RETURN 1 AS test").single()["test"] == 1:
                    health_status["status"] = "healthy"
        except Exception as e:
            health_status["error"] = str(e)
            logger.error(f"Health check failed: {e}")

        return health_status

    @contextmanager
    def session(self, database: str | None = None):
        """Context manager for a Neo4j session on the configured database."""
        if not self.is_connected():
            raise RuntimeError("Not connected to Neo4j. Call connect() first.")

        with self.driver.session(database=database or self.config.database) as session:
            yield session

    def _serialize(self, obj: Any) -> Any:
        """Convert Neo4j temporal values and nested collections to plain Python values."""
        if isinstance(obj, (DateTime, Date, Time)):
            return obj.iso_format()
        if isinstance(obj, dict):
            return {k: self._serialize(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [self._serialize(item) for item in obj]
        return obj

    def execute_read(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a read query.

        Returns:
            List of result records as dictionaries
        """
        with self.session() as session:
            result = session.run(query, parameters or {})
            return [self._serialize(dict(record)) for record in result]

    def execute_write(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Execute a write query in a single transaction.

        Returns:
            Dictionary with write operation counters
        """
        def work(tx):
            return tx.run(query, parameters or {}).consume()

        with self.session() as session:
            summary = session.execute_write(work)

        return {
            "nodes_created": summary.counters.nodes_created,
            "relationships_created": summary.counters.relationships_created,
            "relationships_deleted": summary.counters.relationships_deleted,
            "properties_set": summary.counters.properties_set,
        }

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_neo4j_service_from_env() -> Neo4jService:
    """
    Create Neo4j service from the centralized settings (config.get_settings()).
    """
    from config import get_settings

    settings = get_settings()

    config = Neo4jConfig(
        uri=settings.neo4j.uri,
        user=settings.neo4j.user,
        password=settings.neo4j.password,
        database=settings.neo4j.database,
        max_pool_size=settings.neo4j.max_pool_size,
        max_connection_lifetime=settings.neo4j.max_connection_lifetime,
        connection_timeout=settings.neo4j.connection_timeout,
        max_transaction_retry_time=settings.neo4j.max_transaction_retry_time,
    )

    return Neo4jService(config=config)
