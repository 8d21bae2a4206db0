"""
FastAPI application for the Floraa back end.

Provides endpoints for:
- AI chat (single and multi-agent modes) and voice commands
- GitHub sign-in and repository listing
- Admin configuration, feature flags, models, agents and updates
"""

import asyncio
import secrets
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from floraa import __version__
from floraa.core.exceptions import ConfigurationError, GitHubAPIError, UpdateInProgressError
from floraa.core.logging import get_logger, set_request_id
from floraa.core.model_cards import MODEL_CARDS, get_usage_tracker
from floraa.core.settings import ConfigManager, get_config_manager
from floraa.chat.models import ChatRequest
from floraa.voice.models import VoiceProcessRequest
from floraa.web_api.security import RateLimiter, SessionSigner, get_client_id

logger = get_logger(__name__)

VOICE_ERROR_REPLY = "Sorry, I encountered an error processing your voice command."

# Reachable while maintenance mode is on
MAINTENANCE_EXEMPT_PREFIXES = ("/health", "/api/admin", "/auth")
RATE_LIMIT_EXEMPT_PREFIXES = ("/health",)


class FeatureToggle(BaseModel):
    enabled: bool


class MaintenanceToggle(BaseModel):
    enabled: bool
    message: Optional[str] = None


class ModelTestRequest(BaseModel):
    provider: str
    model: str


class UpdateRequest(BaseModel):
    version: str


class RollbackRequest(BaseModel):
    target_version: str


class ScheduleRequest(BaseModel):
    version: str
    scheduled_for: datetime


class FloraaServer:
    """
    Owns the FastAPI app and the services behind it.

    Services that are not passed in are resolved from their process-wide
    getters on first use.
    """

    def __init__(self,
                 config_manager: Optional[ConfigManager] = None,
                 chat_service=None,
                 voice_processor=None,
                 github_client=None,
                 update_manager=None,
                 multi_agent_system=None,
                 llm_service=None):
        self.config_manager = config_manager or get_config_manager()
        self._chat_service = chat_service
        self._voice_processor = voice_processor
        self._github_client = github_client
        self._update_manager = update_manager
        self._multi_agent_system = multi_agent_system
        self._llm_service = llm_service
        self._background: set = set()

        settings = self.config_manager.get_config()
        self.sessions = SessionSigner(settings.auth.session)
        self.rate_limiter = RateLimiter.from_settings(settings.security)
        self.config_manager.subscribe(self._on_config_change)
        self.app = self._create_app()

    def _on_config_change(self, settings) -> None:
        security = settings.security
        limits = (security.rate_limit_requests, security.rate_limit_window_minutes * 60)
        if limits != (self.rate_limiter.requests, self.rate_limiter.window_seconds):
            self.rate_limiter = RateLimiter.from_settings(security)
            logger.info(f"Rate limit changed to {limits[0]} requests per {limits[1]}s")

        session = settings.auth.session
        if (session.secret.get_secret_value().encode("utf-8"), session.max_age) != (
                self.sessions.secret, self.sessions.max_age):
            self.sessions = SessionSigner(session)

    # Lazily resolved services

    @property
    def chat_service(self):
        if self._chat_service is None:
            from floraa.chat.service import get_chat_service
            self._chat_service = get_chat_service()
        return self._chat_service

    @property
    def voice_processor(self):
        if self._voice_processor is None:
            from floraa.voice.processor import VoiceCommandProcessor
            self._voice_processor = VoiceCommandProcessor()
        return self._voice_processor

    @property
    def github_client(self):
        if self._github_client is None:
            from floraa.integrations.github import GitHubClient
            self._github_client = GitHubClient(self.config_manager.get_config())
        return self._github_client

    @property
    def update_manager(self):
        if self._update_manager is None:
            from floraa.updates.update_manager import get_update_manager
            self._update_manager = get_update_manager()
        return self._update_manager

    @property
    def multi_agent_system(self):
        if self._multi_agent_system is None:
            from floraa.agents.system import get_multi_agent_system
            self._multi_agent_system = get_multi_agent_system()
        return self._multi_agent_system

    @property
    def llm_service(self):
        if self._llm_service is None:
            from floraa.llm.llm_service import get_llm_service
            self._llm_service = get_llm_service()
        return self._llm_service

    @property
    def settings(self):
        return self.config_manager.get_config()

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        logger.info("Starting Floraa API")
        await self.multi_agent_system.registry.start()
        await self.multi_agent_system.register_agents()
        yield
        logger.info("Shutting down Floraa API")
        await self.multi_agent_system.registry.stop()
        for task in list(self._background):
            task.cancel()

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="Floraa API",
            description="AI chat, voice-to-code and admin services",
            version=__version__,
            lifespan=self.lifespan,
        )

        security = self.settings.security
        if security.cors_enabled:
            app.add_middleware(
                CORSMiddleware,
                allow_origins=security.cors_origins,
                allow_credentials=True,
                allow_methods=["*"],
                allow_headers=["*"],
            )

        # Registered innermost first: request id runs before maintenance and rate limiting
        app.middleware("http")(self.rate_limit_middleware)
        app.middleware("http")(self.maintenance_middleware)
        app.middleware("http")(self.request_id_middleware)

        app.add_api_route("/health", self.health_check, methods=["GET"], summary="Health check")

        app.add_api_route("/api/ai/chat", self.chat, methods=["POST"], summary="Chat with the AI agents")
        app.add_api_route("/api/voice/process", self.process_voice, methods=["POST"],
                          summary="Process a voice command")
        app.add_api_route("/api/github/repositories", self.github_repositories, methods=["GET"],
                          summary="Repositories of the signed-in user")

        app.add_api_route("/auth/github", self.github_login, methods=["GET"], summary="Start GitHub sign-in")
        app.add_api_route("/auth/github/callback", self.github_callback, methods=["GET"],
                          summary="GitHub OAuth callback")
        app.add_api_route("/auth/logout", self.logout, methods=["POST"], summary="Sign out")
        app.add_api_route("/api/me", self.me, methods=["GET"], summary="Signed-in user")

        admin = [Depends(self.require_admin)]
        app.add_api_route("/api/admin/config", self.get_config, methods=["GET"], dependencies=admin)
        app.add_api_route("/api/admin/config", self.patch_config, methods=["PATCH"], dependencies=admin)
        app.add_api_route("/api/admin/features", self.get_features, methods=["GET"], dependencies=admin)
        app.add_api_route("/api/admin/features/{feature}", self.set_feature, methods=["POST"],
                          dependencies=admin)
        app.add_api_route("/api/admin/maintenance", self.set_maintenance, methods=["POST"], dependencies=admin)
        app.add_api_route("/api/admin/models", self.get_models, methods=["GET"], dependencies=admin)
        app.add_api_route("/api/admin/models/usage", self.get_model_usage, methods=["GET"], dependencies=admin)
        app.add_api_route("/api/admin/models/test", self.test_model, methods=["POST"], dependencies=admin)
        app.add_api_route("/api/admin/agents", self.get_agents, methods=["GET"], dependencies=admin)
        app.add_api_route("/api/admin/updates/status", self.update_status, methods=["GET"], dependencies=admin)
        app.add_api_route("/api/admin/updates/check", self.check_updates, methods=["POST"], dependencies=admin)
        app.add_api_route("/api/admin/updates/perform", self.perform_update, methods=["POST"],
                          status_code=202, dependencies=admin)
        app.add_api_route("/api/admin/updates/rollback", self.rollback_update, methods=["POST"],
                          status_code=202, dependencies=admin)
        app.add_api_route("/api/admin/updates/history", self.update_history, methods=["GET"], dependencies=admin)
        app.add_api_route("/api/admin/updates/schedule", self.schedule_update, methods=["POST"],
                          dependencies=admin)
        app.add_api_route("/api/admin/updates/schedule", self.cancel_schedule, methods=["DELETE"],
                          dependencies=admin)

        return app

    # Middleware

    async def request_id_middleware(self, request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    async def maintenance_middleware(self, request: Request, call_next):
        app_settings = self.settings.app
        if app_settings.maintenance_mode and not request.url.path.startswith(MAINTENANCE_EXEMPT_PREFIXES):
            return JSONResponse(
                {"error": "maintenance", "message": app_settings.maintenance_message},
                status_code=503,
            )
        return await call_next(request)

    async def rate_limit_middleware(self, request: Request, call_next):
        if self.settings.security.rate_limit_enabled and not request.url.path.startswith(RATE_LIMIT_EXEMPT_PREFIXES):
            client_id = get_client_id(request)
            if not await self.rate_limiter.check_rate_limit(client_id):
                logger.warning(f"Rate limit exceeded for {client_id}")
                return JSONResponse({"error": "Rate limit exceeded"}, status_code=429)
        return await call_next(request)

    # Sessions

    def current_user(self, request: Request) -> Optional[Dict[str, Any]]:
        session = self.sessions.decode(request.cookies.get(self.settings.auth.session.cookie_name))
        return session.get("user") if session else None

    def _set_cookie(self, response, name: str, value: str, max_age: int) -> None:
        response.set_cookie(
            name, value,
            max_age=max_age,
            httponly=True,
            secure=self.settings.auth.session.secure,
            samesite="lax",
            path="/",
        )

    async def require_admin(self, request: Request) -> Optional[Dict[str, Any]]:
        """Signed-in user, restricted to ``security.admin_logins`` when that list is set."""
        user = self.current_user(request)
        if user is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        admins = self.settings.security.admin_logins
        if admins and user.get("login") not in admins:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    # Public endpoints

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "version": __version__,
            "maintenance_mode": self.settings.app.maintenance_mode,
        }

    async def chat(self, payload: ChatRequest) -> JSONResponse:
        response = await self.chat_service.handle(payload)
        return JSONResponse(response.model_dump(exclude_none=True), status_code=response.status_code)

    async def process_voice(self, payload: VoiceProcessRequest) -> JSONResponse:
        started = time.monotonic()
        try:
            result = await self.voice_processor.process(
                payload.command, payload.context, payload.project_id, payload.conversation_id
            )
        except Exception as e:
            logger.error(f"Voice processing error: {e}", exc_info=True)
            return JSONResponse({
                "response": VOICE_ERROR_REPLY,
                "should_speak": True,
                "confidence": 0,
                "processing_time": int((time.monotonic() - started) * 1000),
            }, status_code=500)

        result.processing_time = int((time.monotonic() - started) * 1000)
        return JSONResponse(result.model_dump(exclude_none=True))

    async def github_repositories(self, request: Request) -> JSONResponse:
        user = self.current_user(request)
        if user is None:
            return JSONResponse({"error": "Unauthorized"}, status_code=401)
        try:
            repositories = await self.github_client.get_user_repositories(user["access_token"])
        except GitHubAPIError as e:
            logger.error(f"Failed to fetch repositories: {e}")
            return JSONResponse({"error": "Failed to fetch repositories"}, status_code=500)
        return JSONResponse({"repositories": repositories})

    # Auth

    @property
    def _state_cookie(self) -> str:
        return f"{self.settings.auth.session.cookie_name}_state"

    async def github_login(self):
        if not self.settings.auth.github.is_configured:
            return JSONResponse({"error": "GitHub sign-in is not configured"}, status_code=503)
        state = secrets.token_urlsafe(16)
        response = RedirectResponse(self.github_client.authorize_url(state), status_code=302)
        self._set_cookie(response, self._state_cookie, self.sessions.encode({"state": state}), 600)
        return response

    async def github_callback(self, request: Request, code: Optional[str] = None, state: Optional[str] = None):
        failure = RedirectResponse("/login?error=github_auth_failed", status_code=302)
        stored = self.sessions.decode(request.cookies.get(self._state_cookie))
        if not code or not state or not stored or not secrets.compare_digest(stored.get("state", ""), state):
            logger.warning("GitHub callback with missing or mismatched state")
            return failure

        try:
            token = await self.github_client.exchange_code(code)
            user = await self.github_client.get_user(token)
        except GitHubAPIError as e:
            logger.error(f"GitHub sign-in failed: {e}")
            return failure

        session_settings = self.settings.auth.session
        response = RedirectResponse("/dashboard", status_code=302)
        self._set_cookie(
            response, session_settings.cookie_name,
            self.sessions.encode({"user": user.model_dump()}), session_settings.max_age,
        )
        response.delete_cookie(self._state_cookie, path="/")
        logger.info(f"User {user.login} signed in")
        return response

    async def logout(self):
        response = RedirectResponse("/", status_code=302)
        response.delete_cookie(self.settings.auth.session.cookie_name, path="/")
        return response

    async def me(self, request: Request) -> JSONResponse:
        user = self.current_user(request)
        if user is None:
            return JSONResponse({"error": "Unauthorized"}, status_code=401)
        return JSONResponse({k: v for k, v in user.items() if k != "access_token"})

    # Admin: configuration

    async def get_config(self) -> Dict[str, Any]:
        return self.config_manager.public_config()

    async def patch_config(self, updates: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        try:
            self.config_manager.update_config(updates)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return self.config_manager.public_config()

    async def get_features(self) -> Dict[str, bool]:
        return self.settings.features.model_dump()

    async def set_feature(self, feature: str, payload: FeatureToggle) -> Dict[str, bool]:
        try:
            self.config_manager.set_feature(feature, payload.enabled)
        except ConfigurationError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return self.settings.features.model_dump()

    async def set_maintenance(self, payload: MaintenanceToggle) -> Dict[str, Any]:
        self.config_manager.set_maintenance_mode(payload.enabled, payload.message)
        app_settings = self.settings.app
        return {
            "maintenance_mode": app_settings.maintenance_mode,
            "maintenance_message": app_settings.maintenance_message,
        }

    # Admin: models and agents

    async def get_models(self) -> Dict[str, Any]:
        return {
            "available": self.llm_service.get_available_models(),
            "default": self.settings.ai.default_model,
            "cards": [card.to_dict() for card in MODEL_CARDS.values()],
        }

    async def get_model_usage(self) -> Dict[str, Any]:
        return get_usage_tracker().get_summary()

    async def test_model(self, payload: ModelTestRequest) -> Dict[str, Any]:
        success = await self.llm_service.test_model_connection(payload.provider, payload.model)
        return {"provider": payload.provider, "model": payload.model, "success": success}

    async def get_agents(self) -> Dict[str, Any]:
        registry = self.multi_agent_system.registry
        return {
            "agents": [state.to_dict() for state in await registry.get_all_agents()],
            "summary": registry.get_summary_stats(),
        }

    # Admin: updates

    async def update_status(self) -> Dict[str, Any]:
        manager = self.update_manager
        scheduled = manager.get_scheduled_update()
        return {
            "status": manager.get_update_status().model_dump(mode="json"),
            "current_version": manager.current_version,
            "scheduled": scheduled.model_dump() if scheduled else None,
        }

    async def check_updates(self) -> Dict[str, Any]:
        try:
            info = await self.update_manager.check_for_updates()
        except GitHubAPIError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return info.model_dump(mode="json")

    def _track(self, task: asyncio.Task, description: str) -> None:
        """Keep a reference to a background task and log how it ended."""
        def finished(done: asyncio.Task) -> None:
            self._background.discard(done)
            if not done.cancelled() and done.exception() is not None:
                logger.error(f"{description} failed: {done.exception()}")

        self._background.add(task)
        task.add_done_callback(finished)

    async def perform_update(self, payload: UpdateRequest) -> Dict[str, Any]:
        try:
            task = self.update_manager.start_update(payload.version)
        except UpdateInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e))
        self._track(task, f"Update to {payload.version}")
        return {"status": "started", "version": payload.version}

    async def rollback_update(self, payload: RollbackRequest) -> Dict[str, Any]:
        try:
            task = self.update_manager.start_rollback(payload.target_version)
        except UpdateInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e))
        self._track(task, f"Rollback to {payload.target_version}")
        return {"status": "started", "target_version": payload.target_version}

    async def update_history(self) -> Dict[str, Any]:
        return {"history": [entry.model_dump() for entry in self.update_manager.get_update_history()]}

    async def schedule_update(self, payload: ScheduleRequest) -> Dict[str, Any]:
        scheduled = await self.update_manager.schedule_update(payload.version, payload.scheduled_for)
        return scheduled.model_dump()

    async def cancel_schedule(self) -> Dict[str, Any]:
        return {"cancelled": self.update_manager.cancel_scheduled_update()}


def create_app(**services) -> FastAPI:
    """Build the API; keyword arguments override the default services."""
    return FloraaServer(**services).app
