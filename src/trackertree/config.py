"""TrackerTree settings — environment and .env values validated per tracker."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

TRACKERS = ("azure", "jira")


def _find_project_root() -> Path:
    """Walk up from CWD to find directory containing pyproject.toml or .env."""
    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".env").exists():
            return parent
    return cwd


PROJECT_ROOT = _find_project_root()

# Load .env from project root (if it exists)
_env_path = PROJECT_ROOT / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


def _mask(secret: str) -> str:
    if not secret:
        return "(not set)"
    if len(secret) > 4:
        return f"{'*' * 8}...{secret[-4:]}"
    return "***"


class Settings(BaseSettings):
    """All TrackerTree configuration, loaded from env vars / .env file."""

    # ── Tracker selection ────────────────────────────────────────────
    tracker: str = Field(default="azure", description="'azure' or 'jira'")

    # ── Azure DevOps ─────────────────────────────────────────────────
    ado_organization_url: str = Field(
        default="", description="Organization URL, e.g. https://dev.azure.com/contoso"
    )
    ado_pat: str = Field(default="", description="Personal access token")
    ado_api_version: str = Field(default="7.1", description="REST api-version")

    # ── Jira ──────────────────────────────────────────────────────────
    jira_base_url: str = Field(default="", description="Jira instance URL")
    jira_auth_mode: str = Field(
        default="cloud", description="'cloud' (email+token) or 'server' (PAT)"
    )
    jira_email: str = Field(default="", description="Atlassian account email (cloud)")
    jira_api_token: str = Field(default="", description="API token or PAT")
    jira_parent_fields: str = Field(
        default="parent,customfield_10009,customfield_10014",
        description="Comma-separated fields checked in order for the parent reference",
    )

    # ── HTTP ──────────────────────────────────────────────────────────
    http_timeout: int = Field(default=30, description="Request timeout seconds")
    http_max_retries: int = Field(default=3, description="Max retries on 429/5xx")

    # ── Fetch limits ──────────────────────────────────────────────────
    fetch_max_ids_per_project: int = Field(
        default=100, description="Candidate ids sampled per project"
    )
    fetch_batch_size: int = Field(default=100, description="Ids per batch request")
    fetch_max_depth: int = Field(
        default=5, description="Max fetch rounds, including the initial one"
    )

    # ── Paths ─────────────────────────────────────────────────────────
    data_dir: str = Field(default="data", description="Data directory")

    # ── Logging ─────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(
        default="logs/trackertree.log", description="Log file path"
    )
    log_json: bool = Field(default=False, description="Output logs in JSON")

    # Use absolute env_file path so Pydantic-settings finds it regardless of CWD
    model_config = {
        "env_file": str(_env_path),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # ── Derived helpers ───────────────────────────────────────────────

    @property
    def data_path(self) -> Path:
        p = Path(self.data_dir)
        if not p.is_absolute():
            p = PROJECT_ROOT / p
        p.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def selection_path(self) -> Path:
        return self.data_path / "selection.json"

    @property
    def parent_fields(self) -> list[str]:
        return [f.strip() for f in self.jira_parent_fields.split(",") if f.strip()]

    def _missing(self, *names: str) -> list[str]:
        return [
            f"{name} is not set. Add it to your .env file."
            for name in names
            if not getattr(self, name.lower())
        ]

    def validate_azure_config(self) -> list[str]:
        """Check the Azure DevOps connection settings."""
        return self._missing("ADO_ORGANIZATION_URL", "ADO_PAT")

    def validate_jira_config(self) -> list[str]:
        """Check the Jira connection settings.

        Returns a list of error messages (empty = valid).
        """
        errors = self._missing("JIRA_BASE_URL", "JIRA_API_TOKEN")
        if self.jira_auth_mode == "cloud":
            # Cloud Basic auth pairs the token with the account email
            errors += self._missing("JIRA_EMAIL")
        elif self.jira_auth_mode != "server":
            errors.append(
                f"JIRA_AUTH_MODE must be 'cloud' or 'server', got: {self.jira_auth_mode!r}"
            )
        if not self.parent_fields:
            errors.append("JIRA_PARENT_FIELDS must name at least one field.")
        return errors

    def validate_tracker_config(self, tracker: str | None = None) -> list[str]:
        """Validate the settings of the given (or configured) tracker."""
        name = (tracker or self.tracker).lower()
        if name == "azure":
            errors = self.validate_azure_config()
        elif name == "jira":
            errors = self.validate_jira_config()
        else:
            return [f"TRACKER must be one of {', '.join(TRACKERS)}, got: {name!r}"]

        for label, value in (
            ("FETCH_MAX_IDS_PER_PROJECT", self.fetch_max_ids_per_project),
            ("FETCH_BATCH_SIZE", self.fetch_batch_size),
            ("FETCH_MAX_DEPTH", self.fetch_max_depth),
        ):
            if value < 1:
                errors.append(f"{label} must be at least 1, got: {value}")
        return errors

    def as_display_dict(self) -> dict[str, str]:
        """Return a sanitized dict of all config values for display."""
        return {
            "TRACKER": self.tracker,
            "ADO_ORGANIZATION_URL": self.ado_organization_url or "(not set)",
            "ADO_PAT": _mask(self.ado_pat),
            "ADO_API_VERSION": self.ado_api_version,
            "JIRA_BASE_URL": self.jira_base_url or "(not set)",
            "JIRA_AUTH_MODE": self.jira_auth_mode,
            "JIRA_EMAIL": self.jira_email or "(not set)",
            "JIRA_API_TOKEN": _mask(self.jira_api_token),
            "JIRA_PARENT_FIELDS": ", ".join(self.parent_fields) or "(not set)",
            "HTTP_TIMEOUT": str(self.http_timeout),
            "HTTP_MAX_RETRIES": str(self.http_max_retries),
            "FETCH_MAX_IDS_PER_PROJECT": str(self.fetch_max_ids_per_project),
            "FETCH_BATCH_SIZE": str(self.fetch_batch_size),
            "FETCH_MAX_DEPTH": str(self.fetch_max_depth),
            "DATA_DIR": self.data_dir,
            "LOG_LEVEL": self.log_level,
            "LOG_FILE": self.log_file or "(not set)",
            "LOG_JSON": str(self.log_json),
        }


# ── Singleton accessor ────────────────────────────────────────────────

_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Return a cached Settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """Invalidate the cached Settings so the next call to get_settings() reloads."""
    global _settings_instance
    _settings_instance = None
