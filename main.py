import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from actions import ActionStateError
from dashboard import DashboardSession, SessionRegistry
import db
from db import get_store
from models import ViewInfo, ViewStateRead
from schema import OpenViewRequest, RenderRequest, SelectRequest, SessionRequest
from utils import admin_actor
from views import VIEWS

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def _session_expiry_checker(registry: SessionRegistry, max_idle: float):
    """Background task: close sessions whose page never attached a socket or went quiet."""
    while True:
        await asyncio.sleep(min(60.0, max_idle))
        try:
            await registry.expire_idle(max_idle)
        except Exception as e:
            logger.error(f"Session expiry failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.registry = SessionRegistry(await get_store())
    expiry_task = asyncio.create_task(_session_expiry_checker(app.state.registry, db.session_idle_seconds))
    yield
    expiry_task.cancel()
    # No subscription outlives the process
    await app.state.registry.close_all()


app = FastAPI(
    title="Fixel Admin Dashboard",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)


@app.exception_handler(ActionStateError)
async def action_state_handler(request: Request, exc: ActionStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_session(registry: SessionRegistry, session_id: str) -> DashboardSession:
    try:
        return registry.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


async def rendered(session: DashboardSession) -> ViewStateRead:
    await session.view.settled()
    await session.broadcast()
    return session.render()


# --- Views ---

@app.get("/api/views", response_model=list[ViewInfo])
async def list_views():
    return [
        ViewInfo(name=v.name, title=v.title, status_options=list(v.status_options), deletable=v.deletable)
        for v in VIEWS.values()
    ]


@app.post("/api/funcs/dashboard.openView", response_model=ViewStateRead)
async def open_view(data: OpenViewRequest, registry: SessionRegistry = Depends(get_registry)):
    if data.view not in VIEWS:
        raise HTTPException(status_code=404, detail=f"Unknown view: {data.view}")
    session = await registry.open(data.view)
    return session.render()


@app.post("/api/funcs/dashboard.render", response_model=ViewStateRead)
async def render_view(data: RenderRequest, registry: SessionRegistry = Depends(get_registry)):
    session = get_session(registry, data.session_id)
    session.set_filters(search=data.search, status=data.status)
    return await rendered(session)


@app.post("/api/funcs/dashboard.retry", response_model=ViewStateRead)
async def retry_view(data: SessionRequest, registry: SessionRegistry = Depends(get_registry)):
    session = get_session(registry, data.session_id)
    await session.view.retry()
    return await rendered(session)


@app.post("/api/funcs/dashboard.closeView")
async def close_view(data: SessionRequest, registry: SessionRegistry = Depends(get_registry)):
    get_session(registry, data.session_id)
    await registry.close(data.session_id)
    return {"message": "View closed"}


# --- Detail panel ---

@app.post("/api/funcs/dashboard.select", response_model=ViewStateRead)
async def select_record(data: SelectRequest, registry: SessionRegistry = Depends(get_registry)):
    session = get_session(registry, data.session_id)
    await session.view.settled()
    try:
        record = session.view.find(data.record_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Record not found")
    session.detail.select(record)
    return await rendered(session)


@app.post("/api/funcs/dashboard.deselect", response_model=ViewStateRead)
async def deselect_record(data: SessionRequest, registry: SessionRegistry = Depends(get_registry)):
    session = get_session(registry, data.session_id)
    session.detail.clear()
    return await rendered(session)


@app.post("/api/funcs/dashboard.diagnosis", response_model=ViewStateRead)
async def view_diagnosis(data: SessionRequest, registry: SessionRegistry = Depends(get_registry)):
    session = get_session(registry, data.session_id)
    await session.detail.load_diagnosis()
    return await rendered(session)


@app.post("/api/funcs/dashboard.requestDelete", response_model=ViewStateRead)
async def request_delete(data: SessionRequest, registry: SessionRegistry = Depends(get_registry)):
    session = get_session(registry, data.session_id)
    session.detail.request_delete()
    return await rendered(session)


@app.post("/api/funcs/dashboard.cancelDelete", response_model=ViewStateRead)
async def cancel_delete(data: SessionRequest, registry: SessionRegistry = Depends(get_registry)):
    session = get_session(registry, data.session_id)
    session.detail.cancel_delete()
    return await rendered(session)


@app.post("/api/funcs/dashboard.confirmDelete", response_model=ViewStateRead)
async def confirm_delete(
    data: SessionRequest,
    actor: str = Depends(admin_actor),
    registry: SessionRegistry = Depends(get_registry),
):
    session = get_session(registry, data.session_id)
    # A failed write is reported in the rendered action state, not as an HTTP error
    await session.detail.confirm_delete(actor)
    return await rendered(session)


# --- Live updates ---

@app.websocket("/api/ws/{session_id}")
async def dashboard_socket(websocket: WebSocket, session_id: str):
    registry: SessionRegistry = websocket.app.state.registry
    try:
        session = registry.get(session_id)
    except KeyError:
        await websocket.close(code=4404, reason="Session not found")
        return

    await session.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        # The page is gone once its last socket is
        if session.disconnect(websocket) == 0:
            await registry.close(session_id)


def main():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

if __name__ == "__main__":
    main()
