"""CLI configuration.

Settings come from ``teardown.yaml`` (or ``$TEARDOWN_CONFIG``), then an
optional ``accounts.json``, then environment variables. Later sources win.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from ..aws.session import DEFAULT_ROLE_NAME, default_external_id
from ..models.execution_context import DEFAULT_TERRAFORM_DIR
from ..models.ownership import OwnershipPatterns
from ..models.target import ENVIRONMENTS, AccountMap

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "teardown.yaml"
DEFAULT_ACCOUNTS_FILE = "accounts.json"
CONFIG_ENV_VAR = "TEARDOWN_CONFIG"


class ConfigError(ValueError):
    """Configuration is missing or invalid."""


@dataclass
class Config:
    """Teardown configuration.

    Example ``teardown.yaml``::

        project_name: static-site
        project_short_name: static-site
        github_repo: example-org/static-site
        regions: [us-east-1, us-west-2]
        accounts:
          management: "223938610551"
          dev: "822529998967"
        ownership:
          fragments: [static-site]
          prefixes: []
          tag_keys: [Project]
          exclusions: [shared-logging]
    """

    project_name: str = ""
    project_short_name: str = ""
    github_repo: str = ""
    aws_profile: Optional[str] = None
    log_level: str = "INFO"
    regions: List[str] = field(default_factory=lambda: ["us-east-1"])
    accounts: Dict[str, str] = field(default_factory=dict)
    ownership: Dict[str, List[str]] = field(default_factory=dict)
    role_name: str = DEFAULT_ROLE_NAME
    external_id: Optional[str] = None
    output_dir: str = "."
    terraform_dir: str = DEFAULT_TERRAFORM_DIR
    validation_region_prefix: str = "us-"
    source: Optional[str] = None

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Config:
        """Load configuration from file and environment.

        Args:
            path: Explicit config file; otherwise $TEARDOWN_CONFIG or ./teardown.yaml
            environ: Environment mapping (defaults to os.environ)

        Raises:
            ConfigError: If an explicitly named file is missing or unreadable
        """
        environ = os.environ if environ is None else environ
        explicit = path or environ.get(CONFIG_ENV_VAR)
        config_path = Path(explicit) if explicit else Path(DEFAULT_CONFIG_FILE)

        data: Dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"{config_path} must contain a mapping")
            logger.debug(f"Loaded configuration from {config_path}")
        elif explicit:
            raise ConfigError(f"Config file not found: {config_path}")

        config = cls.from_dict(data)
        config.source = str(config_path) if config_path.exists() else None

        accounts_file = Path(data.get("accounts_file", DEFAULT_ACCOUNTS_FILE))
        if not accounts_file.is_absolute() and config.source:
            candidate = config_path.parent / accounts_file
            accounts_file = candidate if candidate.exists() else accounts_file
        if accounts_file.exists():
            config.accounts.update(load_accounts_file(accounts_file))

        config.apply_env(environ)
        return config

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        regions = data.get("regions") or ["us-east-1"]
        if isinstance(regions, str):
            regions = [r.strip() for r in regions.split(",") if r.strip()]
        return cls(
            project_name=str(data.get("project_name", "")),
            project_short_name=str(data.get("project_short_name", "")),
            github_repo=str(data.get("github_repo", "")),
            aws_profile=data.get("aws_profile"),
            log_level=str(data.get("log_level", "INFO")),
            regions=list(regions),
            accounts={k: str(v) for k, v in (data.get("accounts") or {}).items() if v},
            ownership={k: list(v or []) for k, v in (data.get("ownership") or {}).items()},
            role_name=str(data.get("role_name", DEFAULT_ROLE_NAME)),
            external_id=data.get("external_id"),
            output_dir=str(data.get("output_dir", ".")),
            terraform_dir=str(data.get("terraform_dir", DEFAULT_TERRAFORM_DIR)),
            validation_region_prefix=str(data.get("validation_region_prefix", "us-")),
        )

    def apply_env(self, environ: Mapping[str, str]) -> None:
        """Apply environment variable overrides."""
        if environ.get("PROJECT_NAME"):
            self.project_name = environ["PROJECT_NAME"]
        if environ.get("PROJECT_SHORT_NAME"):
            self.project_short_name = environ["PROJECT_SHORT_NAME"]
        if environ.get("GITHUB_REPO"):
            self.github_repo = environ["GITHUB_REPO"]
        if environ.get("EXTERNAL_ID"):
            self.external_id = environ["EXTERNAL_ID"]
        if environ.get("MANAGEMENT_ACCOUNT_ID"):
            self.accounts["management"] = environ["MANAGEMENT_ACCOUNT_ID"]
        for env in ENVIRONMENTS:
            value = environ.get(f"AWS_ACCOUNT_ID_{env.upper()}")
            if value:
                self.accounts[env] = value
        if environ.get("AWS_PROFILE") and not self.aws_profile:
            self.aws_profile = environ["AWS_PROFILE"]

    @property
    def short_name(self) -> str:
        return self.project_short_name or self.project_name

    def resolved_external_id(self) -> str:
        return self.external_id or default_external_id(self.short_name)

    def account_map(self) -> AccountMap:
        return AccountMap.from_dict(self.accounts)

    def ownership_patterns(self) -> OwnershipPatterns:
        """Build validated ownership patterns.

        Raises:
            ConfigError: If no project name is configured or a pattern is unsafe
        """
        if not self.project_name:
            raise ConfigError(
                "No project name configured. Set project_name in teardown.yaml or the PROJECT_NAME variable."
            )
        fragments = list(self.ownership.get("fragments", []))
        if self.github_repo and "/" in self.github_repo:
            fragments.append(self.github_repo.split("/", 1)[1])
        try:
            return OwnershipPatterns.from_project(
                project_name=self.project_name,
                short_name=self.project_short_name or None,
                extra_fragments=fragments,
                extra_prefixes=self.ownership.get("prefixes"),
                tag_keys=self.ownership.get("tag_keys"),
                exclusions=self.ownership.get("exclusions"),
            )
        except ValueError as e:
            raise ConfigError(str(e))


def load_accounts_file(path: Union[str, Path]) -> Dict[str, str]:
    """Read ``accounts.json`` (``{"management", "dev", "staging", "prod"}``).

    Raises:
        ConfigError: If the file is not valid JSON
    """
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}")
    return {key: str(data[key]) for key in ("management",) + ENVIRONMENTS if data.get(key)}
