"""TrackerTree — Azure DevOps and Jira work items as one project hierarchy."""

__version__ = "1.0.0"
