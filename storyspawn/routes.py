"""FastAPI endpoints under /api.

Sessions are played through live orchestrators held by the app's
SessionRegistry; a stored session is loaded on first use. Turn endpoints
return 409 when the session is not accepting input (turn in flight, or game
over).
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from storyspawn import companion
from storyspawn.avatar import equip_item
from storyspawn.models import CustomCharacter, GameState, StoryMessage
from storyspawn.scene import current_location, time_of_day
from storyspawn.session import LocationImage, SessionOrchestrator, TurnResult, World
from storyspawn.tokenizer import tokenize

router = APIRouter()


# ── Request bodies ───────────────────────────────────────


class StartBody(BaseModel):
    scenario: str
    hidden_preamble: str = ""
    world_title: str | None = None
    world_image_url: str | None = None
    location_image: str | None = None  # base64
    location_image_mime: str = "image/jpeg"
    avatar: CustomCharacter | None = None


class ActionBody(BaseModel):
    action: str


class RenameBody(BaseModel):
    title: str


class EquipBody(BaseModel):
    item: str  # inventory item name


class ElaborateBody(BaseModel):
    text: str


# ── Helpers ──────────────────────────────────────────────


def _registry(request: Request):
    return request.app.state.sessions


def _live(request: Request, session_id: str) -> SessionOrchestrator:
    orchestrator = _registry(request).get(session_id)
    if orchestrator is None:
        raise HTTPException(404, "Session not found")
    return orchestrator


def _message(orchestrator: SessionOrchestrator, index: int) -> StoryMessage:
    history = orchestrator.history
    if index < 0 or index >= len(history):
        raise HTTPException(404, "Message not found")
    return history[index]


def _scene(state: GameState) -> dict[str, Any]:
    current = state.map_data.current
    return {
        "timeOfDay": time_of_day(state.game_time),
        "location": current_location(state.story) or (current.name if current else None),
    }


def _snapshot(orchestrator: SessionOrchestrator) -> dict[str, Any]:
    error = orchestrator.last_error
    delta = orchestrator.last_delta
    avatar = orchestrator.avatar
    return {
        "id": orchestrator.session_id,
        "title": orchestrator.title,
        "state": orchestrator.state.value,
        "gameState": orchestrator.game_state.to_wire(),
        "history": [m.to_wire() for m in orchestrator.history],
        "timePlayed": round(orchestrator.time_played),
        "lastError": error.user_message if error else None,
        "delta": delta.model_dump(mode="json") if delta else None,
        "scene": _scene(orchestrator.game_state),
        "avatar": avatar.to_wire() if avatar else None,
    }


def _turn_response(orchestrator: SessionOrchestrator, result: TurnResult | None) -> dict[str, Any]:
    if result is None:
        raise HTTPException(409, f"Session is {orchestrator.state.value}")
    return {**_snapshot(orchestrator), "turn": result.model_dump(mode="json", by_alias=True)}


# ── Sessions ─────────────────────────────────────────────


@router.get("/sessions")
async def list_sessions(request: Request):
    """List saved sessions, most recently played first."""
    return [
        {"id": s.id, "title": s.title, "lastPlayed": s.last_played, "timePlayed": s.time_played}
        for s in _registry(request).store.list_sessions()
    ]


@router.post("/sessions")
async def start_session(request: Request, body: StartBody):
    """Start a new game and play its opening turn."""
    registry = _registry(request)
    orchestrator = registry.create()
    orchestrator.avatar = body.avatar
    world = World(title=body.world_title, image_url=body.world_image_url) if body.world_title else None
    image = (
        LocationImage(base64=body.location_image, mime_type=body.location_image_mime)
        if body.location_image else None
    )
    result = await orchestrator.start_game(
        body.scenario, hidden_preamble=body.hidden_preamble, world=world, location_image=image,
    )
    registry.register(orchestrator)
    return _turn_response(orchestrator, result)


@router.get("/sessions/{session_id}")
async def get_session(request: Request, session_id: str):
    return _snapshot(_live(request, session_id))


@router.post("/sessions/{session_id}/load")
async def load_session(request: Request, session_id: str):
    """Reload a session from storage, discarding any live copy."""
    registry = _registry(request)
    registry.drop(session_id)
    return _snapshot(_live(request, session_id))


@router.patch("/sessions/{session_id}")
async def rename_session(request: Request, session_id: str, body: RenameBody):
    registry = _registry(request)
    renamed = registry.store.rename_session(session_id, body.title)
    if renamed is None:
        raise HTTPException(404, "Session not found")
    registry.drop(session_id)
    return {"id": renamed.id, "title": renamed.title}


@router.delete("/sessions/{session_id}")
async def delete_session(request: Request, session_id: str):
    registry = _registry(request)
    registry.drop(session_id)
    if not registry.store.delete_session(session_id):
        raise HTTPException(404, "Session not found")
    return {"ok": True}


@router.post("/sessions/{session_id}/menu")
async def return_to_menu(request: Request, session_id: str):
    """Leave the session; it stays in storage."""
    orchestrator = _registry(request).drop(session_id)
    if orchestrator is None:
        raise HTTPException(404, "Session not active")
    orchestrator.return_to_menu()
    return {"ok": True}


# ── Turns ────────────────────────────────────────────────


@router.post("/sessions/{session_id}/actions")
async def submit_action(request: Request, session_id: str, body: ActionBody):
    orchestrator = _live(request, session_id)
    return _turn_response(orchestrator, await orchestrator.submit(body.action))


@router.post("/sessions/{session_id}/reroll")
async def reroll(request: Request, session_id: str):
    orchestrator = _live(request, session_id)
    return _turn_response(orchestrator, await orchestrator.reroll())


# ── Rendering and companions ─────────────────────────────


@router.get("/sessions/{session_id}/messages/{index}/segments")
async def message_segments(request: Request, session_id: str, index: int):
    """Tokenize one history message into text, marker and entity segments."""
    orchestrator = _live(request, session_id)
    message = _message(orchestrator, index)
    state = orchestrator.game_state
    segments = tokenize(
        message.text,
        [c.name for c in state.characters],
        [i.name for i in state.player_status.inventory],
        _registry(request).config.render,
    )
    return [s.model_dump() for s in segments]


@router.get("/sessions/{session_id}/messages/{index}/summary")
async def message_summary(request: Request, session_id: str, index: int):
    registry = _registry(request)
    message = _message(_live(request, session_id), index)
    return {"summary": await companion.summarize_message(registry.llm, message.text)}


@router.get("/sessions/{session_id}/suggestions")
async def suggestions(request: Request, session_id: str):
    registry = _registry(request)
    orchestrator = _live(request, session_id)
    if registry.config.disable_suggestions or not orchestrator.game_state.story:
        return []
    return await companion.suggest_actions(registry.llm, orchestrator.game_state.story)


@router.get("/sessions/{session_id}/environment")
async def environment(request: Request, session_id: str):
    """Classify the current scene for background art."""
    registry = _registry(request)
    story = _live(request, session_id).game_state.story
    if not story:
        return {"environment": "default"}
    return {"environment": await companion.classify_environment(registry.llm, story)}


@router.post("/sessions/{session_id}/elaborate")
async def elaborate(request: Request, session_id: str, body: ElaborateBody):
    """Expand on a discovery, event or piece of world lore."""
    registry = _registry(request)
    context = _live(request, session_id).game_state.story
    return {"text": await companion.elaborate(registry.llm, body.text, context)}


@router.get("/sessions/{session_id}/summary")
async def summary(request: Request, session_id: str):
    registry = _registry(request)
    orchestrator = _live(request, session_id)
    return {"summary": await companion.summarize_story(registry.llm, orchestrator.history)}


# ── Avatar ───────────────────────────────────────────────


@router.put("/sessions/{session_id}/avatar")
async def set_avatar(request: Request, session_id: str, avatar: CustomCharacter):
    """Replace the player's avatar. Its appearance goes out with every later action."""
    orchestrator = _live(request, session_id)
    orchestrator.set_avatar(avatar)
    return avatar.to_wire()


@router.post("/sessions/{session_id}/avatar/equip")
async def equip(request: Request, session_id: str, body: EquipBody):
    """Equip an inventory item on the avatar, replacing whatever is in its slot."""
    orchestrator = _live(request, session_id)
    if orchestrator.avatar is None:
        raise HTTPException(409, "No avatar set")
    inventory = orchestrator.game_state.player_status.inventory
    item = next((i for i in inventory if i.name == body.item), None)
    if item is None:
        raise HTTPException(404, "Item not in inventory")
    equipped = equip_item(orchestrator.avatar, item)
    if equipped is orchestrator.avatar:
        raise HTTPException(422, f"{item.name} has no equipment slot")
    orchestrator.set_avatar(equipped)
    return equipped.to_wire()
