"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from tooltalk.ai.client import ModelEndpoint, create_endpoint
from tooltalk.ai.tools.registry import ToolRegistry
from tooltalk.config import AppConfig
from tooltalk.core.session import SessionManager
from tooltalk.core.types import StorageBackend
from tooltalk.errors import AgentError
from tooltalk.log import get_logger
from tooltalk.storage.base import PersistenceStore
from tooltalk.storage.conversation_repo import ConversationRepository
from tooltalk.storage.database import Database
from tooltalk.storage.memory import MemoryStore

logger = get_logger(__name__)


class ToolTalkApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.db: Database | None = None
        self.store: PersistenceStore = self._create_store()
        self.tool_registry = ToolRegistry()
        self.endpoint: ModelEndpoint | None = None
        self._manager: SessionManager | None = None

    @property
    def session_manager(self) -> SessionManager:
        if self._manager is None:
            raise AgentError("Application not started. Call start() first.")
        return self._manager

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Storage
        if self.db is not None:
            await self.db.initialize()

        # 2. Model endpoint
        self.endpoint = create_endpoint(self.config)

        # 3. Tools
        self.tool_registry.discover_and_register(self.config.ai.tools)

        # 4. Sessions
        self._manager = SessionManager(
            self.endpoint,
            self.store,
            tools=self.tool_registry,
            ai_config=self.config.ai,
            config=self.config.manager,
        )

        logger.info(
            "tooltalk_started",
            backend=self.config.ai.backend,
            model=self.config.ai.model,
            storage=self.config.storage.backend,
            tools=self.tool_registry.names(),
        )

    async def stop(self) -> None:
        """Release the endpoint transport and storage."""
        if self.endpoint is not None:
            await self.endpoint.close()
            self.endpoint = None
        await self.store.close()
        self._manager = None
        logger.info("tooltalk_stopped")

    async def __aenter__(self) -> ToolTalkApp:
        try:
            await self.start()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def _create_store(self) -> PersistenceStore:
        match self.config.storage.backend:
            case StorageBackend.MEMORY:
                return MemoryStore()
            case StorageBackend.SQLITE:
                self.db = Database(self.config.storage.db_path)
                return ConversationRepository(self.db)
