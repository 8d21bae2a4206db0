"""
GitHub REST client: OAuth sign-in, repositories, organizations and releases.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from floraa.core.exceptions import GitHubAPIError
from floraa.core.logging import get_logger
from floraa.core.settings import Settings, get_settings

logger = get_logger(__name__)

GITHUB_OAUTH_URL = "https://github.com"
GITHUB_ACCEPT = "application/vnd.github.v3+json"
USER_AGENT = "Floraa"
DEFAULT_CALLBACK_URL = "http://localhost:52993/auth/github/callback"


class GitHubUser(BaseModel):
    id: str
    login: str
    name: str
    email: str = ""
    avatar_url: str = ""
    bio: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    blog: Optional[str] = None
    twitter_username: Optional[str] = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0
    created_at: str = ""
    access_token: str

    @classmethod
    def from_api(cls, payload: Dict[str, Any], access_token: str) -> "GitHubUser":
        return cls(
            id=str(payload["id"]),
            login=payload["login"],
            name=payload.get("name") or payload["login"],
            email=payload.get("email") or "",
            avatar_url=payload.get("avatar_url") or "",
            bio=payload.get("bio"),
            company=payload.get("company"),
            location=payload.get("location"),
            blog=payload.get("blog"),
            twitter_username=payload.get("twitter_username"),
            public_repos=payload.get("public_repos") or 0,
            followers=payload.get("followers") or 0,
            following=payload.get("following") or 0,
            created_at=payload.get("created_at") or "",
            access_token=access_token,
        )


class GitHubClient:
    """
    Async GitHub client.

    Args:
        settings: Settings providing OAuth credentials and the API base URL
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        timeout: Request timeout in seconds
    """

    def __init__(self,
                 settings: Optional[Settings] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = 30.0):
        self.settings = settings or get_settings()
        self.api_url = self.settings.update.api_url.rstrip("/")
        self.oauth_url = GITHUB_OAUTH_URL
        self._transport = transport
        self.timeout = timeout

    def _client(self, base_url: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, transport=self._transport, timeout=self.timeout)

    @staticmethod
    def _headers(access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"Accept": GITHUB_ACCEPT, "User-Agent": USER_AGENT}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _request(self,
                       method: str,
                       path: str,
                       error_message: str,
                       access_token: Optional[str] = None,
                       **kwargs) -> Any:
        async with self._client(self.api_url) as client:
            try:
                response = await client.request(method, path, headers=self._headers(access_token), **kwargs)
            except httpx.HTTPError as e:
                logger.error(f"GitHub request {method} {path} failed: {e}")
                raise GitHubAPIError(f"{error_message}: {e}") from e

        if not response.is_success:
            logger.error(f"GitHub API error: {response.status_code} for {method} {path}")
            raise GitHubAPIError(f"{error_message} (status {response.status_code})", response.status_code)
        return response.json()

    # OAuth

    def authorize_url(self, state: str) -> str:
        """URL of GitHub's consent page for the configured OAuth app."""
        github = self.settings.auth.github
        params = {
            "client_id": github.client_id or "",
            "redirect_uri": github.callback_url or DEFAULT_CALLBACK_URL,
            "scope": github.scope,
            "state": state,
        }
        return f"{self.oauth_url}/login/oauth/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """
        Trade an OAuth callback code for an access token.

        Raises:
            GitHubAPIError: If GitHub rejects the code
        """
        github = self.settings.auth.github
        payload = {
            "client_id": github.client_id or "",
            "client_secret": github.client_secret.get_secret_value() if github.client_secret else "",
            "code": code,
            "redirect_uri": github.callback_url or DEFAULT_CALLBACK_URL,
        }
        async with self._client(self.oauth_url) as client:
            try:
                response = await client.post(
                    "/login/oauth/access_token",
                    data=payload,
                    headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                )
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to exchange OAuth code: {e}") from e

        if not response.is_success:
            raise GitHubAPIError("Failed to exchange OAuth code", response.status_code)

        body = response.json()
        token = body.get("access_token")
        if not token:
            raise GitHubAPIError(f"Failed to exchange OAuth code: {body.get('error', 'no access token')}")
        return token

    # REST

    async def get_user(self, access_token: str) -> GitHubUser:
        payload = await self._request("GET", "/user", "Failed to fetch user", access_token)
        return GitHubUser.from_api(payload, access_token)

    async def get_user_repositories(self, access_token: str, page: int = 1, per_page: int = 30) -> List[Dict[str, Any]]:
        return await self._request(
            "GET", "/user/repos", "Failed to fetch repositories", access_token,
            params={"page": page, "per_page": per_page, "sort": "updated", "type": "all"},
        )

    async def get_repository_contents(self, access_token: str, owner: str, repo: str, path: str = "") -> Any:
        return await self._request(
            "GET", f"/repos/{owner}/{repo}/contents/{path}",
            "Failed to fetch repository contents", access_token,
        )

    async def create_repository(self,
                                access_token: str,
                                name: str,
                                description: Optional[str] = None,
                                private: bool = False) -> Dict[str, Any]:
        return await self._request(
            "POST", "/user/repos", "Failed to create repository", access_token,
            json={"name": name, "description": description, "private": private, "auto_init": True},
        )

    async def get_user_organizations(self, access_token: str) -> List[Dict[str, Any]]:
        return await self._request("GET", "/user/orgs", "Failed to fetch organizations", access_token)

    async def get_latest_release(self, repo: str) -> Dict[str, Any]:
        """Latest published release of ``owner/repo``."""
        return await self._request("GET", f"/repos/{repo}/releases/latest", "GitHub API error")
