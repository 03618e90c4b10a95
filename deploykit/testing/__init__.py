"""deploykit testing utilities.

Provides mocks and fixtures for testing code that drives deployments and
failure recovery without network access or a real git repository.
"""

from deploykit.testing.fixtures import SAMPLE_PATCH, create_change_set, create_status
from deploykit.testing.mock import (
    ArtifactUpload,
    FakeClock,
    FakeCommandRunner,
    MockArtifactsClient,
    MockCall,
    MockDeploymentsClient,
    MockGitHubClient,
    RecordingArtifactStore,
)

__all__ = [
    # Mocks
    "MockDeploymentsClient",
    "MockArtifactsClient",
    "MockGitHubClient",
    "MockCall",
    "FakeCommandRunner",
    "RecordingArtifactStore",
    "ArtifactUpload",
    "FakeClock",
    # Helper functions
    "create_status",
    "create_change_set",
    "SAMPLE_PATCH",
]
