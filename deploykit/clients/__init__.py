"""deploykit resource clients."""

from deploykit.clients.artifacts import ArtifactsClient
from deploykit.clients.deployments import DeploymentsClient
from deploykit.clients.github import GitHubClient, github_headers

__all__ = [
    "ArtifactsClient",
    "DeploymentsClient",
    "GitHubClient",
    "github_headers",
]
