"""
Live sync: re-publish MongoDB change-stream events to the owning user's sockets.

Change streams only work on a replica set. When the server is standalone
(local dev, small deployments) the bridge logs one warning and the clients
keep polling the REST API.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from healthhub.services.connection_registry import ConnectionRegistry
from healthhub.services.event_publisher import EventPublisher
from healthhub.utils.chat_helpers import to_jsonable
from healthhub.utils.logger import get_logger

logger = get_logger("change_feed")


@dataclass(frozen=True)
class WatchedEntity:
    name: str
    collection: str
    event: str


WATCHED_ENTITIES = (
    WatchedEntity("medication", "medications", "medication-updated"),
    WatchedEntity("vital", "vitals", "vital-updated"),
    WatchedEntity("appointment", "appointments", "appointment-updated"),
    WatchedEntity("careplan", "careplans", "careplan-updated"),
    WatchedEntity("notification", "notifications", "notification-updated"),
    WatchedEntity("healthrecord", "healthrecords", "healthrecord-updated"),
)


@dataclass
class ChangeFeedStatus:
    started: bool = False
    available: bool = False
    active: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "started": self.started,
            "live_push_available": self.available,
            "active": list(self.active),
            "failed": dict(self.failed),
        }


def owner_of(document: Dict[str, Any] | None) -> Optional[str]:
    if not document:
        return None
    owner = document.get("userId") or document.get("user_id")
    return str(owner) if owner else None


class ChangeFeedBridge:
    def __init__(
        self,
        database_provider: Callable[[], Any],
        registry: ConnectionRegistry,
        publisher: EventPublisher,
        entities=WATCHED_ENTITIES,
        setup_timeout: float = 10.0,
    ) -> None:
        self.database_provider = database_provider
        self.registry = registry
        self.publisher = publisher
        self.entities = tuple(entities)
        self.setup_timeout = setup_timeout
        self._status = ChangeFeedStatus()
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def live_push_available(self) -> bool:
        return self._status.available

    def status(self) -> ChangeFeedStatus:
        return self._status

    async def start(self) -> ChangeFeedStatus:
        """Open one subscription per entity. Never raises."""
        if self._status.started:
            return self._status
        self._status = ChangeFeedStatus(started=True)

        try:
            database = self.database_provider()
        except Exception as e:
            logger.warning(f"⚠️ Change streams not started ({e}). Using polling-based updates.")
            return self._status
        if database is None:
            logger.warning("⚠️ Change streams not started: database is not initialized. Using polling-based updates.")
            return self._status

        loop = asyncio.get_running_loop()
        pending: Dict[str, asyncio.Future] = {}
        for entity in self.entities:
            ready = loop.create_future()
            pending[entity.name] = ready
            self._tasks[entity.name] = asyncio.create_task(
                self._watch(database, entity, ready), name=f"change-feed-{entity.name}"
            )

        abandoned: List[asyncio.Task] = []
        for name, ready in pending.items():
            try:
                await asyncio.wait_for(asyncio.shield(ready), timeout=self.setup_timeout)
                self._status.active.append(name)
            except Exception as e:
                self._status.failed[name] = str(e) or e.__class__.__name__
                # a subscription still opening after the timeout must not stream later
                abandoned.append(self._tasks.pop(name))
        for task in abandoned:
            task.cancel()
        if abandoned:
            await asyncio.gather(*abandoned, return_exceptions=True)

        self._status.available = bool(self._status.active)
        if self._status.available:
            logger.info(f"✅ MongoDB change streams active for: {', '.join(self._status.active)}")
        if self._status.failed:
            logger.warning(
                "⚠️ Change streams not available (requires MongoDB replica set) for "
                f"{', '.join(sorted(self._status.failed))}; using polling-based updates instead"
            )
        return self._status

    async def _watch(self, database, entity: WatchedEntity, ready: asyncio.Future) -> None:
        stream = None
        try:
            stream = database[entity.collection].watch(full_document="updateLookup")
            # forces the server round trip, which is where a standalone server refuses
            first = await stream.try_next()
            if not ready.done():
                ready.set_result(True)
            if first is not None:
                await self.handle_change(entity, first)
            async for change in stream:
                await self.handle_change(entity, change)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.error(f"❌ {entity.name} change stream error: {e}")
                self._degrade(entity.name, str(e))
        finally:
            if stream is not None:
                try:
                    await stream.close()
                except Exception as e:
                    logger.debug(f"{entity.name} change stream close failed: {e}")

    def _degrade(self, name: str, reason: str) -> None:
        if name in self._status.active:
            self._status.active.remove(name)
        self._status.failed[name] = reason
        self._status.available = bool(self._status.active)

    async def handle_change(self, entity: WatchedEntity, change: Dict[str, Any]) -> int:
        """Emit `<entity>-updated` to every connection of the document's owner. Returns the number of emits."""
        try:
            document = change.get("fullDocument")
            user_id = owner_of(document)
            if not user_id:
                return 0
            connections = self.registry.connections_for(user_id)
            if not connections:
                return 0
            payload = {
                "type": change.get("operationType"),
                "data": to_jsonable(document),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            for connection_id in sorted(connections):
                await self.publisher.emit(entity.event, payload, to=connection_id)
            logger.debug(f"📤 Emitted {entity.event} to user {user_id} ({len(connections)} connection(s))")
            return len(connections)
        except Exception as e:
            logger.error(f"❌ Error in {entity.name} change stream handler: {e}", exc_info=True)
            return 0

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._status = ChangeFeedStatus()
