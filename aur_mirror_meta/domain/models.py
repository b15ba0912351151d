"""
Pydantic models for the AUR metadata mirror.

This module defines all data models used throughout the application, including:
- Package records persisted in the index
- The transient unit passed through the sync pipeline
- AUR RPC (v5) response payloads

All models use Pydantic for validation, serialization, and type safety.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Index Models
# ---------------------------------------------------------------------------


class PackageInfo(BaseModel):
    """
    Scalar attributes of one package, keyed by (branch, pkg_name).
    """

    branch: str
    pkg_name: str
    pkg_desc: Optional[str] = None
    version: str
    url: Optional[str] = None
    commit_id: str = Field(description="Commit the record was derived from.")


class PackageDetails(BaseModel):
    """
    A full package record: scalar info plus the eight multi-valued attributes.

    Order inside the lists is not significant and duplicates are meaningless;
    the store deduplicates them on insert.
    """

    info: PackageInfo
    depends: List[str] = Field(default_factory=list)
    make_depends: List[str] = Field(default_factory=list)
    opt_depends: List[str] = Field(default_factory=list)
    check_depends: List[str] = Field(default_factory=list)
    provides: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    replaces: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Sync Pipeline Models
# ---------------------------------------------------------------------------


class SyncTask(BaseModel):
    """Unit handed from the fetch producer to the index-write consumer."""

    branch: str
    commit_id: str
    srcinfo_text: str = ""


class SearchType(str, Enum):
    """Attribute selected by the RPC `by` field."""

    NAME = "name"
    NAME_DESC = "name-desc"
    DEPENDS = "depends"
    MAKE_DEPENDS = "makedepends"
    OPT_DEPENDS = "optdepends"
    CHECK_DEPENDS = "checkdepends"

    @classmethod
    def from_str(cls, value: str) -> Optional["SearchType"]:
        try:
            return cls(value)
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# GitHub GraphQL Models
# ---------------------------------------------------------------------------


class GqlBlob(BaseModel):
    """`... on Blob { text }`; text is absent when the object is not a blob."""

    text: Optional[str] = None


class GqlSrcInfoData(BaseModel):
    # Aliases x0..xN -> blob, or null when the path does not exist at that commit.
    repository: Dict[str, Optional[GqlBlob]] = Field(default_factory=dict)


class GqlError(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str = ""


class GqlSrcInfoResponse(BaseModel):
    data: Optional[GqlSrcInfoData] = None
    errors: Optional[List[GqlError]] = None


# ---------------------------------------------------------------------------
# RPC Models
# ---------------------------------------------------------------------------


class RpcPackageInfo(BaseModel):
    """
    Search result entry, using the field names of the official AUR RPC.

    Fields the mirror cannot know (votes, maintainer, timestamps) are zeroed.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(default=0, alias="ID")
    name: str = Field(alias="Name")
    description: str = Field(default="", alias="Description")
    package_base: str = Field(alias="PackageBase")
    package_base_id: int = Field(default=0, alias="PackageBaseID")
    version: str = Field(alias="Version")
    url: str = Field(default="", alias="URL")
    url_path: str = Field(alias="URLPath")
    maintainer: str = Field(default="", alias="Maintainer")
    num_votes: int = Field(default=0, alias="NumVotes")
    popularity: float = Field(default=0.0, alias="Popularity")
    first_submitted: int = Field(default=0, alias="FirstSubmitted")
    last_modified: int = Field(default=0, alias="LastModified")
    out_of_date: Optional[str] = Field(default=None, alias="OutOfDate")

    @classmethod
    def from_info(cls, info: PackageInfo) -> "RpcPackageInfo":
        return cls(
            name=info.pkg_name,
            description=info.pkg_desc or "",
            package_base=info.branch,
            version=info.version,
            url=info.url or "",
            url_path=snapshot_url_path(info.branch),
        )


class RpcPackageDetails(RpcPackageInfo):
    """Info (`type=info`) result entry."""

    submitter: str = Field(default="", alias="Submitter")
    license: List[str] = Field(default_factory=list, alias="License")
    depends: List[str] = Field(default_factory=list, alias="Depends")
    makedepends: List[str] = Field(default_factory=list, alias="MakeDepends")
    optdepends: List[str] = Field(default_factory=list, alias="OptDepends")
    checkdepends: List[str] = Field(default_factory=list, alias="CheckDepends")
    provides: List[str] = Field(default_factory=list, alias="Provides")
    conflicts: List[str] = Field(default_factory=list, alias="Conflicts")
    replaces: List[str] = Field(default_factory=list, alias="Replaces")
    groups: List[str] = Field(default_factory=list, alias="Groups")
    keywords: List[str] = Field(default_factory=list, alias="Keywords")
    co_maintainers: List[str] = Field(default_factory=list, alias="CoMaintainers")

    @classmethod
    def from_details(cls, details: PackageDetails) -> "RpcPackageDetails":
        info = details.info
        return cls(
            name=info.pkg_name,
            description=info.pkg_desc or "",
            package_base=info.branch,
            version=info.version,
            url=info.url or "",
            url_path=snapshot_url_path(info.branch),
            depends=details.depends,
            makedepends=details.make_depends,
            optdepends=details.opt_depends,
            checkdepends=details.check_depends,
            provides=details.provides,
            conflicts=details.conflicts,
            replaces=details.replaces,
            groups=details.groups,
        )


class RpcResponse(BaseModel):
    """
    Envelope shared by every RPC answer, including errors.

    `error` is omitted from the JSON when unset.
    """

    model_config = ConfigDict(populate_by_name=True)

    error: Optional[str] = None
    result_count: int = Field(default=0, alias="resultcount")
    results: List[Dict[str, Any]] = Field(default_factory=list)
    response_type: str = Field(alias="type")
    version: Optional[int] = None


def snapshot_url_path(branch: str) -> str:
    return f"/cgit/aur.git/snapshot/{branch}.tar.gz"
