# dronevis/main.py
import asyncio
import contextlib
import logging
from typing import Any, Dict

from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .config import load_settings
from .models import ClientMsg, ErrorMsg, FleetRoutePlan
from .planner import PlannerClient, PlannerError
from .session import ProgressHub, VisualizerSession, parse_events
from .viz.clock import AsyncioClock
from .viz.summary import delivery_points, plan_metrics

settings = load_settings()

logger = logging.getLogger("dronevis")
if not logging.getLogger().handlers:
    logging.basicConfig(level=settings.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger.setLevel(settings.log_level.upper())

app = FastAPI(title="dronevis")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

hub = ProgressHub()
planner = PlannerClient(settings.planner_url, timeout_s=settings.planner_timeout_s)


@app.get("/health")
def health():
    return {"status": "ok", "viewers": len(hub.sessions)}


@app.get("/config")
def get_config():
    pb, sm = settings.playback, settings.sampler
    return {
        "speed": {"min": pb.min_speed, "max": pb.max_speed, "step": pb.speed_step,
                  "default": pb.default_speed},
        "trailCap": pb.trail_cap,
        "sampler": {"debounceMs": sm.debounce_ms, "changeGate": sm.change_gate,
                    "stride": sm.stride, "window": sm.window, "maxWaitMs": sm.max_wait_ms},
    }


@app.post("/summary")
def summarize(body: Dict[str, Any]):
    try:
        plan = FleetRoutePlan.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"invalid plan: {e.errors()[:3]}")
    return {
        "deliveryPoints": [p.wire() for p in delivery_points(plan)],
        "metrics": plan_metrics(plan).wire(),
    }


# ---------- progress ingestion (planner -> us) ----------
# runs on the event loop that owns the sessions
@app.post("/progress")
async def post_progress(body: Any = Body(...)):
    events = parse_events(body)
    delivered = hub.publish(events)
    return {"accepted": len(events), "delivered": delivered}


@app.websocket("/ws/progress")
async def progress_feed(ws: WebSocket):
    await ws.accept()
    logger.info("[progress] feeder connected")
    try:
        while True:
            raw = await ws.receive_json()
            hub.publish(parse_events(raw))
    except WebSocketDisconnect:
        logger.info("[progress] feeder disconnected")


# ---------- viewer socket ----------
async def _drain(ws: WebSocket, session: VisualizerSession):
    while True:
        msg = await session.outbox.get()
        await ws.send_json(msg)


@app.websocket("/ws")
async def ws_endpoint(ws: WebSocket):
    await ws.accept()
    session = VisualizerSession(settings, AsyncioClock(), planner=planner)
    hub.register(session)
    logger.info("[ws] viewer connected (%d total)", len(hub.sessions))
    sender = asyncio.create_task(_drain(ws, session))

    session.send(session.meta().wire())

    try:
        while True:
            raw = await ws.receive_json()
            try:
                msg = ClientMsg.model_validate(raw)
            except ValidationError as e:
                session.send(ErrorMsg(message=f"bad message: {e.errors()[:1]}").wire())
                continue

            ctl = session.controller
            try:
                if msg.type == "load_plan" and msg.plan is not None:
                    session.load_plan(msg.plan)

                elif msg.type == "calculate" and msg.orders is not None:
                    session.calculate(msg.orders)

                elif msg.type == "cancel":
                    session.cancel_calculation()

                elif msg.type == "start":
                    ctl.start()

                elif msg.type == "pause":
                    ctl.pause()

                elif msg.type == "resume":
                    ctl.resume()

                elif msg.type == "reset":
                    ctl.reset()
                    session.send(session.meta().wire())

                elif msg.type == "set_speed" and msg.speed is not None:
                    ctl.set_speed(msg.speed)
                    session.send(session.meta().wire())

                elif msg.type == "clear":
                    session.clear()
                    session.send(session.meta().wire())

            except ValidationError as e:
                session.send(ErrorMsg(message=f"invalid plan: {e.errors()[:1]}").wire())
            except PlannerError as e:
                session.send(ErrorMsg(message=str(e)).wire())

    except WebSocketDisconnect:
        logger.info("[ws] viewer disconnected")
    finally:
        hub.unregister(session)
        session.close()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await sender
