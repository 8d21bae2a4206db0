"""
Release checks and the update pipeline.
"""

from floraa.updates.models import (
    GitHubRelease, ReleaseAsset, UpdateHistoryEntry, UpdateInfo, UpdateState, UpdateStatus,
)
from floraa.updates.update_manager import (
    UpdateManager, compare_versions, get_update_manager, set_update_manager,
)

__all__ = [
    "GitHubRelease",
    "ReleaseAsset",
    "UpdateHistoryEntry",
    "UpdateInfo",
    "UpdateState",
    "UpdateStatus",
    "UpdateManager",
    "compare_versions",
    "get_update_manager",
    "set_update_manager",
]
