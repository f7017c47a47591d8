"""FastAPI REST API for inspecting and driving a topicbus Bus."""

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from typing import Any, Dict, List, Optional, Union

from .bus import Bus
from .errors import BusError, LabelError, ParameterError, PatternError
from .pattern import Pattern


app = FastAPI(title="topicbus API", version="1.0.0")
bus_instance: Optional[Bus] = None


class PatternRequest(BaseModel):
    label: str
    pattern: str


class MatchRequest(BaseModel):
    topic: str


class BuildRequest(BaseModel):
    params: Dict[str, Union[str, List[str]]] = {}


class PublishRequest(BaseModel):
    params: Dict[str, Union[str, List[str]]] = {}
    payload: Any = None
    qos: Optional[int] = None
    retain: bool = False


class SubscribeRequest(BaseModel):
    qos: Optional[int] = None


def set_bus(bus: Optional[Bus]):
    """Set the bus instance for the API."""
    global bus_instance
    bus_instance = bus


def _get_bus() -> Bus:
    if bus_instance is None:
        raise HTTPException(status_code=503, detail="Bus not available")
    return bus_instance


def _get_pattern(label: str) -> Pattern:
    bus = _get_bus()
    if label not in bus.router:
        raise HTTPException(status_code=404, detail=f"unknown label ({label})")
    return bus.get_pattern(label)


def _describe(label: str, pattern: Pattern, bus: Bus) -> Dict[str, Any]:
    return {
        "label": label,
        "pattern": pattern.pattern,
        "topic": pattern.topic,
        "parameter_count": pattern.parameter_count,
        "subscribed": pattern.topic in bus.subscription_topics,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    bus = bus_instance
    return {
        "status": "healthy",
        "bus_available": bus is not None and bus.is_available(),
        "bus_status": bus.status.value if bus is not None else None,
    }


@app.get("/api/patterns")
async def list_patterns():
    """List registered patterns in dispatch order."""
    bus = _get_bus()
    return {"patterns": [_describe(label, pattern, bus) for label, pattern in bus.router]}


@app.post("/api/patterns", status_code=201)
async def create_pattern(request: PatternRequest):
    """Register a pattern under a label."""
    bus = _get_bus()
    try:
        bus.set_pattern(request.label, request.pattern)
    except LabelError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PatternError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _describe(request.label, bus.get_pattern(request.label), bus)


@app.delete("/api/patterns/{label}")
async def delete_pattern(label: str):
    """Remove a pattern and its listeners."""
    _get_pattern(label)
    _get_bus().remove_pattern(label)
    return {"status": "ok"}


@app.post("/api/patterns/{label}/match")
async def match_topic(label: str, request: MatchRequest):
    """Match a concrete topic against one pattern."""
    pattern = _get_pattern(label)
    params = pattern.match_parameters(request.topic)
    return {"matched": params is not None, "params": params or {}}


@app.post("/api/patterns/{label}/build")
async def build_topic(label: str, request: BuildRequest):
    """Render a concrete topic from parameters."""
    pattern = _get_pattern(label)
    try:
        return {"topic": pattern.build_topic(request.params)}
    except ParameterError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/patterns/{label}/subscribe")
async def subscribe(label: str, request: Optional[SubscribeRequest] = None):
    """Subscribe the bus to a label's topic."""
    _get_pattern(label)
    bus = _get_bus()
    try:
        granted = await bus.subscribe(label, qos=request.qos if request else None)
    except BusError as e:
        raise HTTPException(status_code=503 if not bus.is_available() else 409, detail=str(e))
    return {"status": "ok", "granted": granted}


@app.post("/api/patterns/{label}/publish")
async def publish(label: str, request: PublishRequest):
    """Publish a payload on a label."""
    _get_pattern(label)
    bus = _get_bus()
    try:
        topic = await bus.publish(label, request.params, request.payload, qos=request.qos, retain=request.retain)
    except ParameterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BusError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "ok", "topic": topic}
