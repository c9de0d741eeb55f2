"""TrackerTree tracker layer — pluggable Azure DevOps / Jira adapters."""

from trackertree.config import Settings, get_settings
from trackertree.trackers.azure import AzureDevOpsTracker
from trackertree.trackers.base import HttpTracker, TrackerAdapter, TrackerClientError
from trackertree.trackers.jira import JiraTracker

__all__ = [
    "AzureDevOpsTracker",
    "HttpTracker",
    "JiraTracker",
    "TrackerAdapter",
    "TrackerClientError",
    "get_tracker",
]


def get_tracker(
    tracker_name: str | None = None,
    settings: Settings | None = None,
    **kwargs,
) -> TrackerAdapter:
    """Factory to get the configured tracker adapter."""
    s = settings or get_settings()
    trackers = {
        "azure": AzureDevOpsTracker,
        "ado": AzureDevOpsTracker,
        "jira": JiraTracker,
    }
    name = (tracker_name or s.tracker).lower()
    cls = trackers.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown tracker: {name!r}. Available: {', '.join(trackers.keys())}"
        )
    return cls(s, **kwargs)
