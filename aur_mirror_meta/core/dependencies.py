from pathlib import Path
from typing import Optional

from aur_mirror_meta.core.config import Config
from aur_mirror_meta.storage.db_manager import IndexStore
from aur_mirror_meta.storage.sqlite_db_manager import SqliteIndexStore

_config: Optional[Config] = None
_index_store: Optional[IndexStore] = None
_github_token: Optional[str] = None
_github_token_resolved = False


def set_config(config: Config) -> None:
    """Install the process configuration (called once by the CLI)."""
    global _config, _index_store, _github_token, _github_token_resolved
    _config = config
    _index_store = None
    _github_token = None
    _github_token_resolved = False


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_index_store() -> IndexStore:
    global _index_store
    if _index_store is None:
        db_path: Path = get_config().db_path()
        _index_store = SqliteIndexStore(db_path)
        _index_store.initialize()
    return _index_store


def get_github_token() -> Optional[str]:
    global _github_token, _github_token_resolved
    if not _github_token_resolved:
        _github_token = get_config().github_token()
        _github_token_resolved = True
    return _github_token
