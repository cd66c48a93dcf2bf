"""
Real-time collaboration rooms.

Each room (one per form) is owned by a ``RoomActor``: a single asyncio task
that drains a message queue, so room state is only ever touched by that task.
The document is an opaque JSON payload; the latest edit wins. Edits are
persisted as the form's draft after ``COLLAB_SAVE_DELAY_SECONDS`` without
further changes, and once more when the last member leaves.

Room state lives in this process only. Running several workers requires
sticky routing by form id.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from starlette.websockets import WebSocketDisconnect

from ..core import config
from ..database import AsyncSessionFactory
from ..models import Form

logger = logging.getLogger(__name__)

LoadFn = Callable[[int], Awaitable[Any]]
PersistFn = Callable[[int, Any], Awaitable[None]]

JOIN = "join"
LEAVE = "leave"
EDIT = "edit"
BROADCAST = "broadcast"


class RoomActor:
    def __init__(
        self,
        room_id: int,
        load: LoadFn,
        persist: PersistFn,
        on_empty: Callable[[int, "RoomActor"], None],
        save_delay: float,
    ):
        self.room_id = room_id
        self.queue: asyncio.Queue = asyncio.Queue()
        self.members: Set[Any] = set()
        self.document: Any = None
        self._load = load
        self._persist = persist
        self._on_empty = on_empty
        self._save_delay = save_delay
        self._save_task: Optional[asyncio.Task] = None
        self._dirty = False
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"collab-room-{self.room_id}")

    def post(self, kind: str, member: Any = None, payload: Any = None) -> None:
        self.queue.put_nowait((kind, member, payload))

    async def _run(self) -> None:
        try:
            self.document = await self._load(self.room_id)
        except SQLAlchemyError as e:
            logger.error("Room %s: loading draft failed: %s", self.room_id, e)

        while True:
            kind, member, payload = await self.queue.get()

            if kind == JOIN:
                self.members.add(member)
                await self._send(member, {"event": "initialContent", "document": self.document})
            elif kind == LEAVE:
                self.members.discard(member)
            elif kind == EDIT:
                self.document = payload
                self._dirty = True
                await self._broadcast({"event": "documentUpdate", "document": payload}, exclude=member)
                self._schedule_save()
            elif kind == BROADCAST:
                await self._broadcast(payload)

            if not self.members:
                await self.flush()
                # Während des Speicherns kann ein neuer Teilnehmer eingetroffen sein
                if not self.members and self.queue.empty():
                    self._on_empty(self.room_id, self)
                    logger.debug("Room %s closed", self.room_id)
                    return

    async def _send(self, member: Any, data: Dict[str, Any]) -> None:
        try:
            await member.send_json(data)
        except (WebSocketDisconnect, RuntimeError, ConnectionError) as e:
            logger.info("Room %s: dropping member after failed send: %s", self.room_id, e)
            self.members.discard(member)

    async def _broadcast(self, data: Dict[str, Any], exclude: Any = None) -> None:
        for member in list(self.members):
            if member is not exclude:
                await self._send(member, data)

    def _schedule_save(self) -> None:
        if self._save_task is not None:
            self._save_task.cancel()
        self._save_task = asyncio.create_task(self._save_later())

    async def _save_later(self) -> None:
        await asyncio.sleep(self._save_delay)
        self._save_task = None
        await self._save()

    async def _save(self) -> None:
        if not self._dirty:
            return
        self._dirty = False
        try:
            await self._persist(self.room_id, self.document)
        except SQLAlchemyError as e:
            self._dirty = True
            logger.error("Room %s: saving draft failed: %s", self.room_id, e)

    async def flush(self) -> None:
        """Cancel a pending debounced save and save now."""
        if self._save_task is not None:
            self._save_task.cancel()
            self._save_task = None
        await self._save()

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self.flush()


class CollaborationHub:
    """Registry of room actors keyed by form id."""

    def __init__(
        self,
        load: LoadFn,
        persist: PersistFn,
        save_delay: float = config.COLLAB_SAVE_DELAY_SECONDS,
    ):
        self.rooms: Dict[int, RoomActor] = {}
        self._load = load
        self._persist = persist
        self._save_delay = save_delay

    def _room(self, room_id: int) -> RoomActor:
        actor = self.rooms.get(room_id)
        if actor is None:
            actor = RoomActor(room_id, self._load, self._persist, self._remove, self._save_delay)
            self.rooms[room_id] = actor
            actor.start()
        return actor

    def _remove(self, room_id: int, actor: RoomActor) -> None:
        if self.rooms.get(room_id) is actor:
            del self.rooms[room_id]

    def join(self, room_id: int, member: Any) -> None:
        self._room(room_id).post(JOIN, member)

    def leave(self, room_id: int, member: Any) -> None:
        actor = self.rooms.get(room_id)
        if actor is not None:
            actor.post(LEAVE, member)

    def edit(self, room_id: int, member: Any, document: Any) -> None:
        actor = self.rooms.get(room_id)
        if actor is not None:
            actor.post(EDIT, member, document)

    def broadcast(self, room_id: int, event: str, data: Any) -> None:
        """Server-side event for everyone in the room; no-op for empty rooms."""
        actor = self.rooms.get(room_id)
        if actor is not None:
            actor.post(BROADCAST, payload={"event": event, "data": data})

    async def close(self) -> None:
        for actor in list(self.rooms.values()):
            await actor.stop()
        self.rooms.clear()


async def load_draft(form_id: int) -> Any:
    async with AsyncSessionFactory() as session:
        form = await session.get(Form, form_id)
        return form.draft_content if form is not None else None


async def save_draft(form_id: int, document: Any) -> None:
    async with AsyncSessionFactory() as session:
        async with session.begin():
            await session.execute(
                update(Form).where(Form.id == form_id).values(draft_content=document)
            )
    logger.debug("Draft of form %s saved", form_id)


hub = CollaborationHub(load_draft, save_draft)


def get_hub() -> CollaborationHub:
    return hub
