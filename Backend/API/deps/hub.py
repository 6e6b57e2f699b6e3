from fastapi import WebSocket


# WebSocket fan-out of round snapshots
class Hub:
    def __init__(self):
        self.active: dict[str, set[WebSocket]] = {}
    async def connect(self, key: str, ws: WebSocket):
        await ws.accept()
        self.active.setdefault(key, set()).add(ws)
    def disconnect(self, key: str, ws: WebSocket):
        watchers = self.active.get(key)
        if watchers is None:
            return
        watchers.discard(ws)
        if not watchers:
            del self.active[key]
    async def send(self, key: str, msg: str):
        for ws in list(self.active.get(key, set())):
            try:
                await ws.send_text(msg)
            except Exception:
                self.disconnect(key, ws)

hub = Hub()
