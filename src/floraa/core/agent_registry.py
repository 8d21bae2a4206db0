"""
Live state of the architect, developer and reviewer agents.

The multi-agent system reports every status change here; the admin agents
endpoint reads it back. A background sweep marks agents that stopped
reporting as offline.
"""

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from floraa.core.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentStatus(Enum):
    INITIALIZING = "initializing"
    IDLE = "idle"
    ACTIVE = "active"
    ERROR = "error"
    OFFLINE = "offline"


def _default_metrics() -> Dict[str, float]:
    return {"messages_processed": 0, "tasks_completed": 0, "tasks_failed": 0}


@dataclass
class AgentState:
    agent_id: str
    name: str
    agent_type: str
    status: AgentStatus = AgentStatus.INITIALIZING
    model: Optional[str] = None
    project_id: Optional[str] = None
    current_task: Optional[str] = None
    error_message: Optional[str] = None
    capabilities: List[str] = field(default_factory=list)
    metrics: Dict[str, float] = field(default_factory=_default_metrics)
    last_seen: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Admin endpoint shape: ``type`` instead of ``agent_type``, ISO timestamps."""
        data = asdict(self)
        data["type"] = data.pop("agent_type")
        data["status"] = self.status.value
        data["last_heartbeat"] = data.pop("last_seen").isoformat()
        return data

    def seconds_since_seen(self) -> float:
        return (_utcnow() - self.last_seen).total_seconds()


class AgentRegistry:
    """
    Async-safe map of agent id to ``AgentState``.

    Updates for ids that were never registered are logged and dropped.
    """

    def __init__(self, health_check_interval: float = 30, heartbeat_timeout: float = 300):
        self.agents: Dict[str, AgentState] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval = health_check_interval
        self._stale_after = heartbeat_timeout
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def is_monitoring(self) -> bool:
        return self._sweeper is not None

    async def start(self) -> None:
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_forever())
            logger.info("Agent health monitoring started")

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Agent health monitoring stopped")

    async def register_agent(self,
                             agent_id: str,
                             name: str,
                             agent_type: str,
                             model: Optional[str] = None,
                             capabilities: Optional[List[str]] = None) -> AgentState:
        """Add an agent in the ``initializing`` state, replacing any earlier entry with the same id."""
        state = AgentState(agent_id=agent_id, name=name, agent_type=agent_type,
                           model=model, capabilities=list(capabilities or []))
        async with self._lock:
            self.agents[agent_id] = state
        logger.info(f"Registered agent {agent_id} ({name})")
        return state

    async def _mutate(self, agent_id: str, change: Callable[[AgentState], None]) -> Optional[AgentState]:
        async with self._lock:
            state = self.agents.get(agent_id)
            if state is None:
                logger.warning(f"Ignoring update for unregistered agent {agent_id}")
                return None
            change(state)
            state.last_seen = _utcnow()
            return state

    async def update_agent_status(self,
                                  agent_id: str,
                                  status: AgentStatus,
                                  current_task: Optional[str] = None,
                                  error_message: Optional[str] = None,
                                  project_id: Optional[str] = None) -> None:
        """
        Move an agent to ``status``.

        ``current_task`` is only kept while the agent is active and
        ``error_message`` only while it is in error; ``project_id`` sticks
        until another project is given.
        """
        previous: List[AgentStatus] = []

        def change(state: AgentState) -> None:
            previous.append(state.status)
            state.status = status
            state.current_task = current_task if status is AgentStatus.ACTIVE else None
            state.error_message = error_message if status is AgentStatus.ERROR else None
            if project_id is not None:
                state.project_id = project_id

        if await self._mutate(agent_id, change) and previous[0] is not status:
            logger.debug(f"Agent {agent_id}: {previous[0].value} -> {status.value}")

    async def increment_metric(self, agent_id: str, metric: str, amount: float = 1) -> None:
        def change(state: AgentState) -> None:
            state.metrics[metric] = state.metrics.get(metric, 0) + amount

        await self._mutate(agent_id, change)

    async def get_agent(self, agent_id: str) -> Optional[AgentState]:
        async with self._lock:
            return self.agents.get(agent_id)

    async def get_all_agents(self) -> List[AgentState]:
        async with self._lock:
            return list(self.agents.values())

    async def mark_stale_agents(self) -> List[str]:
        """Set agents not seen within the timeout to offline. Returns their ids."""
        stale = []
        async with self._lock:
            for state in self.agents.values():
                if state.status is not AgentStatus.OFFLINE and state.seconds_since_seen() >= self._stale_after:
                    state.status = AgentStatus.OFFLINE
                    state.current_task = None
                    stale.append(state.agent_id)
        for agent_id in stale:
            logger.warning(f"Agent {agent_id} went offline (no activity for {self._stale_after}s)")
        return stale

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.mark_stale_agents()
            except Exception as e:
                logger.error(f"Agent health sweep failed: {e}")

    def get_summary_stats(self) -> Dict[str, Any]:
        by_status: Dict[str, int] = {}
        for state in self.agents.values():
            by_status[state.status.value] = by_status.get(state.status.value, 0) + 1
        return {
            "total": len(self.agents),
            "by_status": by_status,
            "active_count": by_status.get("active", 0),
            "error_count": by_status.get("error", 0),
            "offline_count": by_status.get("offline", 0),
        }
