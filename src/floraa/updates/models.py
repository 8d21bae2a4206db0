"""
Release and update pipeline models.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ReleaseAsset(BaseModel):
    id: int
    name: str
    download_url: str = ""
    size: int = 0


class GitHubRelease(BaseModel):
    id: int
    tag_name: str
    name: str = ""
    body: str = ""
    published_at: str = ""
    prerelease: bool = False
    draft: bool = False
    html_url: str = ""
    assets: List[ReleaseAsset] = Field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "GitHubRelease":
        assets = [
            ReleaseAsset(
                id=asset["id"],
                name=asset.get("name", ""),
                download_url=asset.get("browser_download_url") or asset.get("download_url") or "",
                size=asset.get("size", 0),
            )
            for asset in payload.get("assets") or []
        ]
        return cls(
            id=payload["id"],
            tag_name=payload["tag_name"],
            name=payload.get("name") or "",
            body=payload.get("body") or "",
            published_at=payload.get("published_at") or "",
            prerelease=bool(payload.get("prerelease")),
            draft=bool(payload.get("draft")),
            html_url=payload.get("html_url") or "",
            assets=assets,
        )


class UpdateInfo(BaseModel):
    current_version: str
    latest_version: str
    has_update: bool
    release: Optional[GitHubRelease] = None
    changelog: str = ""
    update_size: int = 0
    release_date: str = ""
    is_prerelease: bool = False


class UpdateState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    INSTALLING = "installing"
    COMPLETED = "completed"
    FAILED = "failed"


class UpdateStatus(BaseModel):
    state: UpdateState = UpdateState.IDLE
    progress: int = 0
    message: str = "Ready to check for updates"
    error: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class UpdateHistoryEntry(BaseModel):
    version: str
    date: str
    status: Literal["success", "failed", "rolled_back"]
    changelog: str = ""


class ScheduledUpdate(BaseModel):
    version: str
    scheduled_for: str
