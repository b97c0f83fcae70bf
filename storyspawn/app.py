from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from storyspawn.config import AppConfig, load_config
from storyspawn.llm import LLM, HttpLLM
from storyspawn.portraits import HttpPortraitGenerator, PortraitGenerator, PortraitResolver
from storyspawn.routes import router
from storyspawn.session import SessionOrchestrator
from storyspawn.storage import SessionStore

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.json"


class SessionRegistry:
    """Live orchestrators by session id, plus what is needed to create more."""

    def __init__(
        self, config: AppConfig, store: SessionStore, llm: LLM, portraits: PortraitGenerator
    ) -> None:
        self.config = config
        self.store = store
        self.llm = llm
        self._portraits = portraits
        self._live: dict[str, SessionOrchestrator] = {}

    def create(self) -> SessionOrchestrator:
        resolver = PortraitResolver(self._portraits, self.config.portraits.placeholder_url)
        return SessionOrchestrator(self.llm, resolver, store=self.store)

    def register(self, orchestrator: SessionOrchestrator) -> None:
        if orchestrator.session_id is not None:
            self._live[orchestrator.session_id] = orchestrator

    def get(self, session_id: str) -> SessionOrchestrator | None:
        """The live orchestrator for a session, loading it from storage if needed."""
        live = self._live.get(session_id)
        if live is not None:
            return live
        orchestrator = self.create()
        if not orchestrator.load_session(session_id):
            return None
        self._live[session_id] = orchestrator
        return orchestrator

    def drop(self, session_id: str) -> SessionOrchestrator | None:
        return self._live.pop(session_id, None)


def create_app(
    config: AppConfig | None = None,
    llm: LLM | None = None,
    portraits: PortraitGenerator | None = None,
) -> FastAPI:
    config = config or load_config(DEFAULT_CONFIG_PATH)
    store = SessionStore(
        config.data_dir,
        max_history=config.max_history,
        prune_to=config.prune_history_to,
        capacity=config.storage_capacity,
    )
    if llm is None:
        llm = HttpLLM(**config.narrator.model_dump())
    if portraits is None:
        portraits = HttpPortraitGenerator(
            provider_url=config.portraits.provider_url,
            api_key=config.portraits.api_key,
            model=config.portraits.model,
            timeout=config.portraits.timeout,
        )

    app = FastAPI(title="StorySpawn")
    app.state.sessions = SessionRegistry(config, store, llm, portraits)
    app.include_router(router, prefix="/api")
    return app
