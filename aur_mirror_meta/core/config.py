"""
Configuration for aur-mirror-meta.

Settings come from a JSON config file, then environment variables, then
defaults. The file only ever stores what the user set explicitly (`login`
writes the GitHub token into it).
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from aur_mirror_meta.core.errors import ConfigError

logger = logging.getLogger(__name__)

APP_NAME = "aur-mirror-meta"
CONFIG_PATH_ENV_VAR = "AMM_CONFIG"
DB_PATH_ENV_VAR = "AMM_DB_PATH"
TOKEN_ENV_VARS = ("AMM_GITHUB_TOKEN", "GITHUB_TOKEN")


class ConfigFileModel(BaseModel):
    """On-disk representation of the config file."""

    db_path: Optional[str] = Field(
        default=None,
        description="Path of the SQLite index database.",
    )
    github_token: Optional[str] = Field(
        default=None,
        description="GitHub token used for the GraphQL API and git endpoints.",
    )


def _xdg_dir(env_var: str, fallback: str) -> Path:
    env_path = os.environ.get(env_var)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / fallback


def get_default_config_path() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / APP_NAME / "config.json"


def get_default_db_path() -> Path:
    return _xdg_dir("XDG_DATA_HOME", ".local/share") / APP_NAME / "aur-meta.db"


def token_from_gh_cli() -> Optional[str]:
    """Ask the GitHub CLI for its token, if it is installed and logged in."""
    gh = shutil.which("gh")
    if gh is None:
        return None
    try:
        output = subprocess.run(
            [gh, "auth", "token"], capture_output=True, text=True, timeout=10, check=False
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"`gh auth token` failed: {e}")
        return None
    token = output.stdout.strip()
    if output.returncode == 0 and token:
        logger.info("GitHub token obtained from `gh` CLI.")
        return token
    return None


class Config:
    """
    Resolves settings.

    Priority for each setting:
    1. Config file (--config, $AMM_CONFIG, or ~/.config/aur-mirror-meta/config.json)
    2. Environment variables
    3. Defaults
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        token_fallback: Callable[[], Optional[str]] = token_from_gh_cli,
    ):
        if config_path is None:
            env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
            config_path = Path(env_path).expanduser() if env_path else get_default_config_path()
        self.config_path = config_path
        self._token_fallback = token_fallback

    def read_from_file(self) -> ConfigFileModel:
        if not self.config_path.exists():
            return ConfigFileModel()
        try:
            raw = json.loads(self.config_path.read_text(encoding="utf-8"))
            return ConfigFileModel(**raw)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable config file {self.config_path}: {e}")
            return ConfigFileModel()

    def modify_file(self, modifier: Callable[[ConfigFileModel], None]) -> None:
        model = self.read_from_file()
        modifier(model)
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(
            model.model_dump_json(indent=2, exclude_none=True), encoding="utf-8"
        )

    def db_path(self) -> Path:
        configured = self.read_from_file().db_path or os.environ.get(DB_PATH_ENV_VAR)
        path = Path(configured).expanduser() if configured else get_default_db_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Database directory {path.parent} cannot be created: {e}") from e
        return path

    def github_token(self) -> Optional[str]:
        token = self.read_from_file().github_token
        if token:
            return token
        for env_var in TOKEN_ENV_VARS:
            token = os.environ.get(env_var)
            if token:
                return token
        logger.debug("GitHub token is not set. Trying `gh auth token`.")
        return self._token_fallback()
