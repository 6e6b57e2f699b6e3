import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import RedirectResponse
import uvicorn

from deps import config
from deps.hub import hub
from deps.services import get_game
from routers import admin, auth, players, rounds
from services.driver import RoundDriver, channel

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = None
    if config.AUTO_TICK:
        driver = RoundDriver(get_game(), hub.send, config.TICK_INTERVAL_MS)
        task = asyncio.create_task(driver.run())
    yield
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="Blocksmith API", lifespan=lifespan)

# Routers
app.include_router(auth.router)
app.include_router(rounds.router)
app.include_router(players.router)
app.include_router(admin.router)


@app.get("/", include_in_schema=False)
def root():
    return RedirectResponse(url="/docs")

@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.websocket("/ws/{round_id}")
async def ws_round(round_id: str, ws: WebSocket):
    key = channel(round_id)
    await hub.connect(key, ws)
    try:
        while True:
            _ = await ws.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(key, ws)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
