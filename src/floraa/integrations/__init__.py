"""
Third-party service clients.
"""

from floraa.integrations.github import GitHubClient, GitHubUser

__all__ = ["GitHubClient", "GitHubUser"]
