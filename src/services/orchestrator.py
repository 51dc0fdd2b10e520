"""Wire the pipeline components around one Gateway link and one task store."""

from typing import Optional

from src.models.event import BroadcastEvent
from src.services.command_observer import CommandObserver
from src.services.completion_observer import CompletionObserver
from src.services.gateway_link import GatewayLink, get_gateway_link
from src.services.lifecycle_engine import TaskLifecycleEngine
from src.services.mission_control import MissionControlClient
from src.services.outbox import Outbox
from src.services.session_links import SessionLinkService
from src.services.task_dispatcher import TaskDispatcher
from src.services.task_store import TaskStore
from src.services.topics import Subscription, Topic
from src.utils.errors import GatewayConnectionError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class Orchestrator:
    """Owns the shared collaborators; observers share the outbox and broadcast topic."""

    def __init__(
        self,
        store: Optional[TaskStore] = None,
        link: Optional[GatewayLink] = None,
        mission_control: Optional[MissionControlClient] = None,
        outbox: Optional[Outbox] = None,
    ):
        if store is None:
            from src.services.supabase_client import SupabaseTaskStore
            store = SupabaseTaskStore()
        self.store = store
        self.link = link or get_gateway_link()
        self.mission_control = mission_control or MissionControlClient()
        self.outbox = outbox or Outbox(store=self.store)
        self.broadcasts: Topic[BroadcastEvent] = Topic("tasks.broadcast")

        self.engine = TaskLifecycleEngine(
            self.store,
            outbox=self.outbox,
            mission_control=self.mission_control,
            broadcasts=self.broadcasts,
        )
        self.completion_observer = CompletionObserver(
            self.store,
            self.mission_control,
            self.outbox,
            broadcasts=self.broadcasts,
        )
        self.command_observer = CommandObserver(
            self.store,
            self.outbox,
            link=self.link,
            broadcasts=self.broadcasts,
        )
        self.session_links = SessionLinkService(self.store, self.link)
        self.dispatcher = TaskDispatcher(self.store, self.link, self.engine)
        self._subscriptions: list[Subscription] = []

    def attach_observers(self) -> list[Subscription]:
        """Subscribe both observers to the link; safe to call more than once."""
        self._subscriptions = [
            self.completion_observer.attach(self.link),
            self.command_observer.attach(self.link),
        ]
        return self._subscriptions

    async def start(self) -> None:
        self.attach_observers()
        try:
            await self.link.connect()
        except GatewayConnectionError as e:
            logger.warning("Gateway unavailable at startup, retrying in background", error=str(e))
            self.link.schedule_reconnect()
        logger.info("Orchestrator started", gateway_url=self.link.url)

    async def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        await self.outbox.drain()
        await self.outbox.close()
        await self.link.disconnect()
        await self.mission_control.aclose()
        logger.info("Orchestrator stopped")


# Global orchestrator instance (singleton pattern)
_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = Orchestrator()
    return _orchestrator
