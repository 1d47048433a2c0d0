"""Shared components behind the HTTP API and the CLI."""

from dynamo_agent.clients.bedrock import ModelClient, ModelConfig
from dynamo_agent.clients.mcp import BackendConfig, ToolBackend
from dynamo_agent.services.events import TurnObserver
from dynamo_agent.services.orchestrator import TurnOrchestrator
from dynamo_agent.tools.optimizer import QueryOptimizer
from dynamo_agent.tools.registry import ToolRegistry
from dynamo_agent.utils.logging import get_logger

logger = get_logger(__name__)


class AgentRuntime:
    """Owns the backend connection, the tool registry and the model client.

    Orchestrators built from one runtime share these but each owns its own
    conversation.
    """

    def __init__(
        self,
        model_config: ModelConfig | None = None,
        backend_config: BackendConfig | None = None,
        model_client: ModelClient | None = None,
        backend: ToolBackend | None = None,
    ):
        self.model_config = model_config or ModelConfig()
        self.backend = backend or ToolBackend(backend_config)
        self._model_client = model_client
        self.registry = ToolRegistry()
        self.optimizer = QueryOptimizer()

    @property
    def ready(self) -> bool:
        return self.backend.connected and self._model_client is not None

    @property
    def model_client(self) -> ModelClient:
        if self._model_client is None:
            self._model_client = ModelClient(self.model_config)
        return self._model_client

    async def start(self) -> None:
        """Connect to the tool server and register its catalog.

        Raises:
            Exception: Connection or configuration failures, which are fatal.
        """
        if self.model_config.inference_profile_id:
            logger.info(f"Using inference profile: {self.model_config.inference_profile_id}")
        else:
            logger.info(f"Using direct model ID (no inference profile): {self.model_config.model_id}")

        # Built before connecting so a missing region fails without spawning the server
        target = self.model_client.config.target
        tools = await self.backend.connect()
        self.registry.register(tools)
        logger.info(f"Agent runtime ready with {len(self.registry)} tools, model target {target}")

    async def stop(self) -> None:
        await self.backend.close()

    def new_orchestrator(self, observer: TurnObserver | None = None) -> TurnOrchestrator:
        """Build an orchestrator with a fresh, empty conversation."""
        return TurnOrchestrator(
            model_client=self.model_client,
            backend=self.backend,
            registry=self.registry,
            optimizer=self.optimizer,
            observer=observer,
        )
