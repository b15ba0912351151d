from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Dict, Iterable, List, Optional

from aur_mirror_meta.domain.models import PackageDetails, PackageInfo, SearchType


class IndexTransaction(ABC):
    """
    Writes performed inside one atomic index transaction.

    Nothing is visible to other connections until `commit()`; a transaction
    left without commit is rolled back.
    """

    @abstractmethod
    def clear(self, branch: str) -> None:
        """Delete every package row of a branch, across all attribute tables."""
        pass

    @abstractmethod
    def set_branch_commit(self, branch: str, commit_id: str) -> None:
        """Point the branch at the commit its new rows are derived from."""
        pass

    @abstractmethod
    def upsert_records(self, records: Iterable[PackageDetails]) -> None:
        """
        Insert-or-replace package info rows; insert-or-ignore attribute rows,
        so repeated values are deduplicated silently.
        """
        pass

    @abstractmethod
    def commit(self) -> None:
        """Make all writes of this transaction visible at once."""
        pass


class IndexStore(ABC):
    """
    Abstract base class for the package index.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Create tables and indexes if they do not exist yet."""
        pass

    @abstractmethod
    def existing_commits(self) -> Dict[str, str]:
        """Map of branch -> last indexed commit id."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[IndexTransaction]:
        """
        Open a write transaction.

        Usage:
            with store.transaction() as tx:
                tx.clear(branch)
                ...
                tx.commit()
        """
        pass

    @abstractmethod
    def search_packages(self, search_type: SearchType, keyword: str) -> List[PackageInfo]:
        """Keyword search over names/descriptions or one dependency table."""
        pass

    @abstractmethod
    def get_package_details(self, package_names: List[str]) -> List[PackageDetails]:
        """Full records for every package whose name is in the list."""
        pass

    @abstractmethod
    def get_branch_commit_id(self, branch: str) -> Optional[str]:
        """Indexed commit of a branch, or None for an unknown branch."""
        pass
