"""Review store connection on cassandra-asyncio-driver.

The cassandra-asyncio-driver extends the standard cassandra-driver with
``session.aexecute()``; connecting and preparing statements stay
synchronous, queries are awaited.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.config.settings import Settings
from src.reviews.models import REVIEWS_TABLES_CQL


logger = structlog.get_logger(__name__)


class AsyncCassandraConnection:
    """Cluster and session owned by the application lifespan.

    ``connect()`` and ``init_schema()`` on startup, ``disconnect()`` on
    shutdown. Repositories receive ``session`` by injection.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._cluster: Cluster | None = None
        self._session = None

    @property
    def session(self):
        """Active session, or None before connect()."""
        return self._session

    @property
    def keyspace(self) -> str:
        return self.settings.cassandra_keyspace

    def connect(self):
        """Open the cluster connection.

        Raises:
            ConnectionError: No contact point could be reached.
        """
        if self._session is not None:
            return self._session

        settings = self.settings
        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        self._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(
                DCAwareRoundRobinPolicy(local_dc=settings.cassandra_local_datacenter)
            ),
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            self._session = self._cluster.connect()
        except Exception as e:
            logger.error(
                "review_store_connection_failed",
                hosts=settings.cassandra_hosts,
                error=str(e),
            )
            self._cluster.shutdown()
            self._cluster = None
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        self._session.default_timeout = settings.cassandra_request_timeout
        logger.info(
            "review_store_connected",
            hosts=settings.cassandra_hosts,
            local_dc=settings.cassandra_local_datacenter,
        )
        return self._session

    def replication_options(self) -> str:
        """CQL replication map for the keyspace.

        Development and test clusters are single node; anything else
        replicates within the local datacenter.
        """
        if self.settings.is_development or self.settings.is_testing:
            return "{'class': 'SimpleStrategy', 'replication_factor': 1}"
        return (
            "{'class': 'NetworkTopologyStrategy', "
            f"'{self.settings.cassandra_local_datacenter}': "
            f"{self.settings.cassandra_replication_factor}}}"
        )

    async def init_schema(self) -> None:
        """Create the keyspace and the three review tables if missing."""
        if self._session is None:
            msg = "Cassandra session not connected"
            raise RuntimeError(msg)

        await self._session.aexecute(
            f"CREATE KEYSPACE IF NOT EXISTS {self.keyspace} "
            f"WITH replication = {self.replication_options()} "
            "AND durable_writes = true"
        )
        self._session.set_keyspace(self.keyspace)

        for cql_template in REVIEWS_TABLES_CQL:
            await self._session.aexecute(cql_template.format(keyspace=self.keyspace))

        logger.info(
            "review_schema_ready",
            keyspace=self.keyspace,
            tables=len(REVIEWS_TABLES_CQL),
        )

    def is_connected(self) -> bool:
        return self._session is not None and not self._session.is_shutdown

    def disconnect(self) -> None:
        """Close session and cluster; safe to call when never connected."""
        if self._session is not None:
            self._session.shutdown()
            self._session = None

        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None
            logger.info("review_store_disconnected")
