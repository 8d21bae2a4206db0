"""
Update manager.

Checks GitHub for new releases and runs the update pipeline: maintenance
mode on, download, install, restart, maintenance mode off. The download,
install and restart steps only report progress; no files are touched.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Set

from floraa.core.exceptions import UpdateInProgressError
from floraa.core.logging import get_logger
from floraa.core.message_bus import MessageBus, UpdateStatusChanged, get_message_bus
from floraa.core.settings import ConfigManager, get_config_manager
from floraa.context.models import now_iso
from floraa.updates.models import (
    GitHubRelease, ScheduledUpdate, UpdateHistoryEntry,
    UpdateInfo, UpdateState, UpdateStatus,
)

logger = get_logger(__name__)

MAINTENANCE_MESSAGE = "System is being updated. Please check back in a few minutes."

StatusListener = Callable[[UpdateStatus], None]

_VERSION_PART_RE = re.compile(r"^(\d+)")


def compare_versions(version1: str, version2: str) -> int:
    """
    Compare dotted versions.

    A leading ``v`` is ignored and missing or non-numeric parts count as 0.

    Returns:
        1 if version1 is newer, -1 if older, 0 if equal
    """
    def parts(version: str) -> List[int]:
        numbers = []
        for part in version.strip().lstrip("vV").split("."):
            match = _VERSION_PART_RE.match(part)
            numbers.append(int(match.group(1)) if match else 0)
        return numbers

    v1, v2 = parts(version1), parts(version2)
    for i in range(max(len(v1), len(v2))):
        a = v1[i] if i < len(v1) else 0
        b = v2[i] if i < len(v2) else 0
        if a > b:
            return 1
        if a < b:
            return -1
    return 0


class UpdateManager:
    """Release checks and the (simulated) update and rollback pipeline."""

    def __init__(self,
                 config_manager: Optional[ConfigManager] = None,
                 github_client=None,
                 message_bus: Optional[MessageBus] = None):
        self.config_manager = config_manager or get_config_manager()
        self._github_client = github_client
        self.message_bus = message_bus or get_message_bus()

        update_settings = self.config_manager.get_config().update
        self.github_repo = update_settings.github_repo
        self.current_version = update_settings.current_version

        self._status = UpdateStatus()
        self._listeners: Set[StatusListener] = set()
        self._history: List[UpdateHistoryEntry] = []
        self._running = False
        self._scheduled: Optional[ScheduledUpdate] = None
        self._scheduled_task: Optional[asyncio.Task] = None
        self._latest_release: Optional[GitHubRelease] = None

    @property
    def github_client(self):
        if self._github_client is None:
            from floraa.integrations.github import GitHubClient
            self._github_client = GitHubClient(self.config_manager.get_config())
        return self._github_client

    @property
    def step_delay(self) -> float:
        return self.config_manager.get_config().update.step_delay_seconds

    # Status

    @property
    def is_running(self) -> bool:
        return self._running

    def get_update_status(self) -> UpdateStatus:
        return self._status.model_copy()

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def _set_status(self, replace: bool = False, **changes: Any) -> None:
        """Update the status (or replace it when ``replace``) and notify listeners."""
        if replace:
            self._status = UpdateStatus(**changes)
        else:
            self._status = self._status.model_copy(update=changes)

        status = self._status.model_copy()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Update status listener failed: {e}")

        self.message_bus.publish_sync(UpdateStatusChanged(
            source="update_manager",
            state=status.state.value,
            progress=status.progress,
            message=status.message,
            error=status.error,
        ))

    # Release check

    async def check_for_updates(self) -> UpdateInfo:
        """
        Compare the latest GitHub release with the installed version.

        Raises:
            GitHubAPIError: If the release cannot be fetched (status becomes failed)
        """
        self._set_status(replace=True, state=UpdateState.CHECKING, progress=10,
                         message="Checking for updates...")
        try:
            release = GitHubRelease.from_api(await self.github_client.get_latest_release(self.github_repo))
        except Exception as e:
            logger.error(f"Update check failed: {e}")
            self._set_status(replace=True, state=UpdateState.FAILED, progress=0,
                             message="Failed to check for updates", error=str(e))
            raise

        has_update = compare_versions(release.tag_name, self.current_version) > 0
        self._latest_release = release
        self._set_status(replace=True, state=UpdateState.IDLE, progress=100,
                         message="Update available" if has_update else "Up to date")

        logger.info(f"Latest release {release.tag_name}, installed {self.current_version}")
        return UpdateInfo(
            current_version=self.current_version,
            latest_version=release.tag_name,
            has_update=has_update,
            release=release,
            changelog=release.body,
            update_size=sum(asset.size for asset in release.assets),
            release_date=release.published_at,
            is_prerelease=release.prerelease,
        )

    # Pipeline

    def _begin(self) -> None:
        if self._running:
            raise UpdateInProgressError("An update is already in progress")
        self._running = True

    def start_update(self, version: str) -> asyncio.Task:
        """
        Claim the pipeline and run the update for ``version`` in a task.

        Raises:
            UpdateInProgressError: If an update or rollback is already running
        """
        self._begin()
        return asyncio.create_task(self._run_update(version))

    def start_rollback(self, target_version: str) -> asyncio.Task:
        """Claim the pipeline and roll back to ``target_version`` in a task."""
        self._begin()
        return asyncio.create_task(self._run_rollback(target_version))

    async def perform_update(self, version: str) -> None:
        """
        Run the update pipeline for ``version``.

        Raises:
            UpdateInProgressError: If an update or rollback is already running
        """
        self._begin()
        await self._run_update(version)

    async def rollback_update(self, target_version: str) -> None:
        """
        Roll back to ``target_version``.

        Raises:
            UpdateInProgressError: If an update or rollback is already running
        """
        self._begin()
        await self._run_rollback(target_version)

    async def _run_update(self, version: str) -> None:
        self._set_status(replace=True, state=UpdateState.DOWNLOADING, progress=0,
                         message="Preparing update...", started_at=now_iso())
        try:
            self._enable_maintenance_mode()
            self._set_status(progress=20, message="Maintenance mode enabled")

            await self._download_update(version)
            self._set_status(state=UpdateState.INSTALLING, progress=60, message="Installing update...")

            await self._install_update(version)
            self._set_status(progress=90, message="Finalizing update...")

            await self._restart_services()
            self._set_status(replace=True, state=UpdateState.COMPLETED, progress=100,
                             message="Update completed successfully", completed_at=now_iso())

            self.current_version = version
        except Exception as e:
            logger.error(f"Update to {version} failed: {e}")
            self._set_status(replace=True, state=UpdateState.FAILED, progress=0,
                             message="Update failed", error=str(e))
            self._record(version, "failed")
            self._leave_maintenance_mode()
            raise
        finally:
            self._running = False

        self._record(version, "success")
        self._leave_maintenance_mode()
        logger.info(f"Updated to {version}")

    async def _run_rollback(self, target_version: str) -> None:
        rolled_back = self.current_version
        self._set_status(replace=True, state=UpdateState.INSTALLING, progress=0,
                         message="Rolling back update...", started_at=now_iso())
        try:
            self._enable_maintenance_mode()
            self._set_status(progress=30, message="Restoring previous version...")

            await asyncio.sleep(self.step_delay)
            self._set_status(progress=70, message="Restarting services...")

            await self._restart_services()
            self._set_status(replace=True, state=UpdateState.COMPLETED, progress=100,
                             message="Rollback completed successfully", completed_at=now_iso())

            self.current_version = target_version
        except Exception as e:
            logger.error(f"Rollback to {target_version} failed: {e}")
            self._set_status(replace=True, state=UpdateState.FAILED, progress=0,
                             message="Rollback failed", error=str(e))
            self._leave_maintenance_mode()
            raise
        finally:
            self._running = False

        self._record(rolled_back, "rolled_back", f"Rolled back to {target_version}")
        self._leave_maintenance_mode()
        logger.info(f"Rolled back from {rolled_back} to {target_version}")

    async def _download_update(self, version: str) -> None:
        for progress in range(20, 51, 5):
            self._set_status(progress=progress, message=f"Downloading update {version}... {progress}%")
            await asyncio.sleep(self.step_delay)

    async def _install_update(self, version: str) -> None:
        for progress in range(60, 86, 5):
            self._set_status(progress=progress, message=f"Installing update {version}... {progress}%")
            await asyncio.sleep(self.step_delay)

    async def _restart_services(self) -> None:
        await asyncio.sleep(self.step_delay)

    def _enable_maintenance_mode(self) -> None:
        self.config_manager.set_maintenance_mode(True, MAINTENANCE_MESSAGE)

    def _disable_maintenance_mode(self) -> None:
        self.config_manager.set_maintenance_mode(False)

    def _leave_maintenance_mode(self) -> None:
        """Turn maintenance mode off; a failure is logged and does not change the run's outcome."""
        try:
            self._disable_maintenance_mode()
        except Exception as e:
            logger.error(f"Failed to disable maintenance mode: {e}")

    # History

    def _record(self, version: str, status: str, changelog: Optional[str] = None) -> None:
        if changelog is None:
            release = self._latest_release
            changelog = release.body if release and release.tag_name == version else ""
        self._history.append(UpdateHistoryEntry(
            version=version, date=now_iso(), status=status, changelog=changelog
        ))

    def get_update_history(self) -> List[UpdateHistoryEntry]:
        """Pipeline runs, newest first."""
        return list(reversed(self._history))

    # Scheduling

    async def schedule_update(self, version: str, when: datetime) -> ScheduledUpdate:
        """Run ``perform_update(version)`` at ``when``, replacing any earlier schedule."""
        self.cancel_scheduled_update()
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)

        delay = max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)
        self._scheduled = ScheduledUpdate(version=version, scheduled_for=when.isoformat())
        self._scheduled_task = asyncio.create_task(self._run_scheduled(version, delay))
        logger.info(f"Update {version} scheduled for {when.isoformat()}")
        return self._scheduled

    async def _run_scheduled(self, version: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._scheduled = None
        self._scheduled_task = None
        try:
            await self.perform_update(version)
        except Exception as e:
            logger.error(f"Scheduled update to {version} failed: {e}")

    def get_scheduled_update(self) -> Optional[ScheduledUpdate]:
        return self._scheduled

    def cancel_scheduled_update(self) -> bool:
        """Cancel the pending scheduled update, if any."""
        task = self._scheduled_task
        self._scheduled = None
        self._scheduled_task = None
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("Scheduled update cancelled")
        return True


_update_manager: Optional[UpdateManager] = None


def get_update_manager() -> UpdateManager:
    """Get the global update manager."""
    global _update_manager
    if _update_manager is None:
        _update_manager = UpdateManager()
    return _update_manager


def set_update_manager(manager: Optional[UpdateManager]) -> None:
    global _update_manager
    _update_manager = manager
