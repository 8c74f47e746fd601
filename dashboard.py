"""Open dashboard pages and the WebSocket connections watching them."""
import asyncio
import logging
import time
import uuid
from typing import Optional

from fastapi import WebSocket

from actions import DetailSurface
from live import LiveView
from models import ViewStateRead
from store import DocumentStore
from views import ViewDefinition, get_view
import view_models as vm

logger = logging.getLogger(__name__)


class DashboardSession:
    """One visible page: its live record set, UI filter state and detail panel."""

    def __init__(self, store: DocumentStore, definition: ViewDefinition):
        self.id = uuid.uuid4().hex
        self.definition = definition
        self.view = LiveView(store, definition)
        self.detail = DetailSurface(store, definition)
        self.search = ""
        self.status = vm.ALL
        self._sockets: list[WebSocket] = []
        self._sends: set[asyncio.Task] = set()
        self.last_seen = time.monotonic()
        self.view.add_listener(self._on_change)

    async def open(self):
        await self.view.open()
        await self.view.settled()

    def touch(self):
        self.last_seen = time.monotonic()

    @property
    def watched(self) -> bool:
        return bool(self._sockets)

    def set_filters(self, search: Optional[str] = None, status: Optional[str] = None):
        if search is not None:
            self.search = search
        if status is not None:
            self.status = status or vm.ALL

    def render(self) -> ViewStateRead:
        items = self.view.view_model(self.search, self.status)
        return ViewStateRead(
            session_id=self.id,
            view=self.definition.name,
            title=self.definition.title,
            loading=self.view.loading,
            error=self.view.error,
            search=self.search,
            status=self.status,
            status_options=list(self.definition.status_options),
            items=[self.definition.card(record).model_dump() for record in items],
            selected=self.detail.detail(),
            action=self.detail.action_read(),
            diagnosis=self.detail.diagnosis_read(),
        )

    # --- WebSocket fan-out ---

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self._sockets.append(websocket)
        await websocket.send_text(self.render().model_dump_json())

    def disconnect(self, websocket: WebSocket) -> int:
        if websocket in self._sockets:
            self._sockets.remove(websocket)
        return len(self._sockets)

    async def broadcast(self):
        """Send the rendered state to every socket on this session."""
        message = self.render().model_dump_json()
        dead = []
        for ws in list(self._sockets):
            try:
                await ws.send_text(message)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    def _on_change(self, view: LiveView):
        if not self._sockets:
            return
        task = asyncio.get_running_loop().create_task(self.broadcast())
        self._sends.add(task)
        task.add_done_callback(self._sends.discard)

    async def close(self):
        await self.view.close()
        for task in list(self._sends):
            task.cancel()


class SessionRegistry:
    def __init__(self, store: DocumentStore):
        self.store = store
        self._sessions: dict[str, DashboardSession] = {}

    def __len__(self):
        return len(self._sessions)

    async def open(self, view_name: str) -> DashboardSession:
        session = DashboardSession(self.store, get_view(view_name))
        self._sessions[session.id] = session
        try:
            await session.open()
        except Exception:
            self._sessions.pop(session.id, None)
            await session.close()
            raise
        logger.info(f"Opened {view_name} session {session.id}")
        return session

    def get(self, session_id: str) -> DashboardSession:
        try:
            session = self._sessions[session_id]
        except KeyError:
            raise KeyError(f"Unknown session: {session_id}") from None
        session.touch()
        return session

    async def close(self, session_id: str):
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await session.close()
        logger.info(f"Closed {session.definition.name} session {session_id}")

    async def expire_idle(self, max_idle: float, now: Optional[float] = None) -> list[str]:
        """Close sessions that have no socket and no request for ``max_idle`` seconds."""
        now = time.monotonic() if now is None else now
        expired = [
            session_id for session_id, session in self._sessions.items()
            if not session.watched and now - session.last_seen >= max_idle
        ]
        for session_id in expired:
            logger.info(f"Session {session_id} idle for {max_idle:g}s, closing")
            await self.close(session_id)
        return expired

    async def close_all(self):
        for session_id in list(self._sessions):
            await self.close(session_id)
