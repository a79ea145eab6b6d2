"""Hosting API clients."""

from histofy.clients.github import GitHubClient, GitHubResponse

__all__ = ["GitHubClient", "GitHubResponse"]
