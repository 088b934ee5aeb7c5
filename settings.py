# settings.py
from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from logger import log

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "enrollment-wizard" / "config.yaml"

ENV_OVERRIDES = {
    "ENROLL_WIZARD_URL": "api_url",
    "ENROLL_WIZARD_TOKEN": "api_token",
    "ENROLL_WIZARD_USERNAME": "username",
}


@dataclass
class WizardSettings:
    api_url: str = "http://localhost:8000"
    api_token: str = ""
    username: str = ""
    deep_link_scheme: str = "defguard"

    # Seconds. Issuance and registration block the operator, lookups do not.
    issue_timeout: float = 30.0
    submit_timeout: float = 30.0
    lookup_timeout: float = 10.0

    download_dir: Path = field(default_factory=Path.cwd)

    def __post_init__(self) -> None:
        self.api_url = self.api_url.rstrip("/")
        self.download_dir = Path(self.download_dir).expanduser()


def load_settings(path: Optional[Path] = None) -> WizardSettings:
    """Read settings from YAML, then apply environment overrides.

    A missing file is not an error: defaults plus environment are enough to
    run against a local server.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    raw: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{config_path}: expected a mapping at top level")
        log.info("Loaded settings from %s", config_path)
    elif path:
        raise FileNotFoundError(f"Config file {config_path} does not exist")

    known = {f.name for f in fields(WizardSettings)}
    unknown = set(raw) - known
    if unknown:
        log.warning("Ignoring unknown settings keys: %s", ", ".join(sorted(unknown)))
    values = {k: v for k, v in raw.items() if k in known}

    for env_name, attr in ENV_OVERRIDES.items():
        if os.environ.get(env_name):
            values[attr] = os.environ[env_name]

    return WizardSettings(**values)
