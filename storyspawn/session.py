"""Session orchestrator: drives one game session turn by turn.

Turn flow:
  1. Append the player's action and a "thinking" placeholder to history.
  2. Stream the conversation to the narrative service and accumulate the reply.
  3. Parse the reply into a StoryUpdate.
  4. Notify on_narrative (story text is ready before any portrait is).
  5. Resolve portraits for the new roster (concurrent, awaited as a batch).
  6. Reconcile into a new GameState and diff it against the old one.
  7. Replace the placeholder with the narration and NPC dialogue lines.
  8. Persist the session snapshot.

States:
  idle → awaiting_response → idle          (success, or failure with last_error set)
                           → game_over     (health ≤ 0 after a successful turn)

Only one turn is in flight at a time. submit() and reroll() are silently
ignored (they return None) unless the session is idle. new_game() and
return_to_menu() are valid from any state; a turn still in flight when one of
them runs finishes into the void.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from storyspawn.avatar import build_preamble
from storyspawn.delta import DeltaSet, diff
from storyspawn.errors import ParseError, StorageError, TransportError, TurnError
from storyspawn.llm import LLM, ChatMessage
from storyspawn.models import (
    Character,
    CustomCharacter,
    DialogueLine,
    GameSession,
    GameState,
    StoryMessage,
    thinking_placeholder,
)
from storyspawn.parser import parse_response
from storyspawn.portraits import PortraitResolver
from storyspawn.prompts import image_start_message, start_message, system_message, user_message
from storyspawn.reconcile import reconcile
from storyspawn.storage import SessionStore
from storyspawn.stream import accumulate

logger = logging.getLogger(__name__)

IMAGE_START_ACTION = "I look around and take in my surroundings."
TITLE_LENGTH = 50


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    GAME_OVER = "game_over"


class World(BaseModel):
    """A featured world the game was started from."""

    title: str
    image_url: str | None = None


class LocationImage(BaseModel):
    """A picture the opening scene is built around."""

    base64: str
    mime_type: str = "image/jpeg"

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


class TurnResult(BaseModel):
    ok: bool
    error: str | None = None  # "transport", "internal" or a ParseError reason
    messages: list[StoryMessage] = Field(default_factory=list)
    delta: DeltaSet | None = None
    state: SessionState


NarrativeListener = Callable[[str, list[DialogueLine]], None]


class SessionOrchestrator:
    def __init__(
        self,
        llm: LLM,
        portraits: PortraitResolver,
        store: SessionStore | None = None,
        avatar: CustomCharacter | None = None,
        on_narrative: NarrativeListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._llm = llm
        self._portraits = portraits
        self._store = store
        self._on_narrative = on_narrative
        self._clock = clock
        self.avatar = avatar
        self._epoch = 0
        self._reset()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def game_state(self) -> GameState:
        return self._game_state

    @property
    def history(self) -> list[StoryMessage]:
        return list(self._history)

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def last_error(self) -> TurnError | None:
        return self._last_error

    @property
    def last_delta(self) -> DeltaSet | None:
        return self._last_delta

    @property
    def time_played(self) -> float:
        if self._clock_started is None:
            return self._played
        return self._played + (self._clock() - self._clock_started)

    # ------------------------------------------------------------------
    # Reset transitions
    # ------------------------------------------------------------------

    def _reset(self) -> None:
        self._epoch += 1
        self._state = SessionState.IDLE
        self._game_state = GameState()
        self._history: list[StoryMessage] = []
        self._conversation: list[ChatMessage] = []
        self._last_sent: ChatMessage | None = None
        self._last_committed = False
        self._session_id: str | None = None
        self._title = ""
        self._world: World | None = None
        self._last_error: TurnError | None = None
        self._last_delta: DeltaSet | None = None
        self._played = 0.0
        self._clock_started: float | None = None
        self._portraits.clear()

    def new_game(self) -> None:
        logger.info("New game: discarding session %s", self._session_id)
        self._reset()

    def return_to_menu(self) -> None:
        logger.info("Return to menu: discarding session %s", self._session_id)
        self._reset()

    def _begin_session(self, title: str, session_id: str | None = None) -> None:
        self._session_id = session_id or uuid.uuid4().hex
        self._title = title
        self._clock_started = self._clock()

    # ------------------------------------------------------------------
    # Turn entry points
    # ------------------------------------------------------------------

    async def start_game(
        self,
        scenario: str,
        hidden_preamble: str = "",
        world: World | None = None,
        location_image: LocationImage | None = None,
    ) -> TurnResult | None:
        """Discard any current session and play the opening turn of a new one."""
        self._reset()
        if world is not None:
            title = world.title
        else:
            title = scenario[:TITLE_LENGTH] + ("..." if len(scenario) > TITLE_LENGTH else "")
        self._begin_session(title)
        self._world = world

        preamble = build_preamble(self.avatar)
        if location_image is not None:
            visible = IMAGE_START_ACTION
            self._game_state = self._game_state.model_copy(
                update={"location_image_url": location_image.data_url}
            )
            message = user_message(image_start_message(visible, preamble), location_image.data_url)
        else:
            visible = scenario
            message = user_message(start_message(scenario, preamble, hidden_preamble))

        self._history = [StoryMessage(author="user", text=visible), thinking_placeholder()]
        self._state = SessionState.AWAITING_RESPONSE
        logger.info("Starting session %s: %r", self._session_id, title)
        self._persist()
        return await self._run_turn(message)

    async def submit(self, action: str) -> TurnResult | None:
        """Play one turn. Returns None when the session is not accepting input."""
        if self._state is not SessionState.IDLE:
            logger.debug("submit ignored in state %s", self._state.value)
            return None
        if self._session_id is None:
            self._begin_session(action[:TITLE_LENGTH] + ("..." if len(action) > TITLE_LENGTH else ""))

        self._history.extend([StoryMessage(author="user", text=action), thinking_placeholder()])
        self._state = SessionState.AWAITING_RESPONSE
        return await self._run_turn(user_message(self._with_preamble(action)))

    async def reroll(self) -> TurnResult | None:
        """Discard everything after the last player action and resubmit it."""
        if self._state is not SessionState.IDLE:
            logger.debug("reroll ignored in state %s", self._state.value)
            return None
        last_user = next(
            (i for i in range(len(self._history) - 1, -1, -1) if self._history[i].author == "user"),
            None,
        )
        if last_user is None:
            return None

        action = self._history[last_user].text
        self._history = [*self._history[:last_user + 1], thinking_placeholder()]
        if self._last_committed:
            self._conversation = self._conversation[:-2]
        message = self._last_sent or user_message(self._with_preamble(action))
        self._state = SessionState.AWAITING_RESPONSE
        logger.info("Rerolling action %r", action)
        return await self._run_turn(message)

    def set_avatar(self, avatar: CustomCharacter | None) -> None:
        """Replace the avatar and save it with the session."""
        self.avatar = avatar
        self._persist()

    def _with_preamble(self, action: str) -> str:
        preamble = build_preamble(self.avatar)
        return f"{preamble} {action}" if preamble else action

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_turn(self, message: ChatMessage) -> TurnResult | None:
        epoch = self._epoch
        self._last_sent = message
        self._last_committed = False
        try:
            return await self._play_turn(message, epoch)
        except TurnError as e:
            if epoch != self._epoch:
                return None
            return self._fail(e)
        except Exception as e:
            logger.exception("Turn crashed in session %s", self._session_id)
            if epoch != self._epoch:
                return None
            return self._fail(TurnError(str(e)))

    async def _play_turn(self, message: ChatMessage, epoch: int) -> TurnResult | None:
        messages = [system_message(), *self._conversation, message]
        raw = await accumulate(self._llm.stream(messages))
        update = parse_response(raw)

        if epoch != self._epoch:
            logger.info("Discarding turn that finished after a reset")
            return None
        if self._on_narrative is not None:
            self._on_narrative(update.story, update.dialogue)

        previous = self._game_state
        roster = await self._portraits.resolve(update.characters, previous.characters)
        if epoch != self._epoch:
            logger.info("Discarding turn that finished after a reset")
            return None

        new_state = reconcile(previous, update, roster)
        delta = diff(previous, new_state)
        turn_messages = _turn_messages(new_state, roster)
        self._replace_placeholder(turn_messages)

        self._game_state = new_state
        self._last_delta = delta
        self._last_error = None
        self._conversation.extend([message, {"role": "assistant", "content": raw}])
        self._last_committed = True

        if new_state.is_game_over:
            logger.info("Session %s: game over", self._session_id)
            self._played = self.time_played
            self._clock_started = None
            self._state = SessionState.GAME_OVER
        else:
            self._state = SessionState.IDLE
        self._persist()

        return TurnResult(ok=True, messages=turn_messages, delta=delta, state=self._state)

    def _fail(self, error: TurnError) -> TurnResult:
        logger.warning("Turn failed in session %s: %s", self._session_id, error)
        notice = StoryMessage(author="narrator", text=error.user_message, type="error")
        self._replace_placeholder([notice])
        self._last_error = error
        self._state = SessionState.IDLE
        if isinstance(error, ParseError):
            reason = error.reason
        elif isinstance(error, TransportError):
            reason = "transport"
        else:
            reason = "internal"
        return TurnResult(ok=False, error=reason, messages=[notice], state=self._state)

    def _replace_placeholder(self, messages: list[StoryMessage]) -> None:
        for i, m in enumerate(self._history):
            if m.is_thinking:
                self._history[i:i + 1] = messages
                return
        self._history.extend(messages)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        if self._store is None or self._session_id is None:
            return
        session = GameSession(
            id=self._session_id,
            title=self._title or "Untitled Adventure",
            last_played=datetime.now(timezone.utc).isoformat(),
            game_state=self._game_state,
            history=[m for m in self._history if not m.is_thinking],
            time_played=round(self.time_played),
            world_image_url=self._world.image_url if self._world else None,
            world_title=self._world.title if self._world else None,
            location_image_url=self._game_state.location_image_url,
            avatar=self.avatar,
        )
        try:
            self._store.save_session(session)
        except StorageError as e:
            logger.error("Could not persist session %s: %s", self._session_id, e)

    def load_session(self, session_id: str) -> bool:
        """Replace the current session with a stored one. False if unknown."""
        if self._store is None:
            return False
        record = self._store.get_session(session_id)
        if record is None:
            return False

        self._reset()
        self._session_id = record.id
        self._title = record.title
        if record.world_title:
            self._world = World(title=record.world_title, image_url=record.world_image_url)
        self._game_state = record.game_state
        self._history = [m for m in record.history if not m.is_thinking]
        self._played = float(record.time_played)
        if record.avatar is not None:
            self.avatar = record.avatar
        self._conversation = _rebuild_conversation(self._history)
        self._last_committed = bool(self._conversation) and self._conversation[-1]["role"] == "assistant"

        if self._game_state.is_game_over:
            self._state = SessionState.GAME_OVER
        else:
            self._clock_started = self._clock()
        logger.info("Loaded session %s (%d messages)", record.id, len(self._history))
        return True


def _turn_messages(state: GameState, roster: list[Character]) -> list[StoryMessage]:
    """Narration plus one message per NPC dialogue line."""
    messages: list[StoryMessage] = []
    if state.story:
        messages.append(StoryMessage(author="narrator", text=state.story, game_time=state.game_time))

    portraits = {c.name: c.image_url for c in roster}
    for line in state.dialogue:
        if line.character_name.lower() == "you":
            continue
        messages.append(StoryMessage(
            author="character",
            text=line.text,
            character_name=line.character_name,
            character_image_url=portraits.get(line.character_name),
        ))
    return messages


def _rebuild_conversation(history: list[StoryMessage]) -> list[ChatMessage]:
    """Chat turns for a restored session: player actions and narration only."""
    conversation: list[ChatMessage] = []
    for m in history:
        if m.author == "user":
            conversation.append(user_message(m.text))
        elif m.author == "narrator" and not m.is_error:
            conversation.append({"role": "assistant", "content": json.dumps({"story": m.text})})
    return conversation
