"""
Parse .SRCINFO blobs into package records.

A .SRCINFO file is a list of `key = value` lines. A `pkgbase` line opens the
shared section; each following `pkgname` line opens a split package whose
properties fall back to the base for any key the package does not set itself.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from aur_mirror_meta.domain.models import PackageDetails, PackageInfo

logger = logging.getLogger(__name__)

Properties = Dict[str, List[str]]

DEFAULT_PKGVER = "0.0.1"
DEFAULT_PKGREL = "1"

# Properties stored in the multi-valued tables, with arch-specific variants folded in.
ARCH_FLATTENED_PROPS = {
    "depends": "depends",
    "make_depends": "makedepends",
    "opt_depends": "optdepends",
    "check_depends": "checkdepends",
    "provides": "provides",
    "conflicts": "conflicts",
    "replaces": "replaces",
}


class _PkgBase(BaseModel):
    pkgbase: str
    properties: Properties = Field(default_factory=dict)


class ParsedSrcInfo(BaseModel):
    """One package declared by a .SRCINFO blob."""

    pkgbase: str
    pkgname: str
    properties: Properties = Field(default_factory=dict)

    # -----------------------------------------------------------------------
    # Parsing
    # -----------------------------------------------------------------------

    @classmethod
    def parse(cls, srcinfo_text: str) -> List["ParsedSrcInfo"]:
        """
        Parse a .SRCINFO blob into zero or more packages.

        Malformed lines are skipped.
        """
        if not srcinfo_text or not srcinfo_text.strip():
            return []

        parser = _SrcInfoParser()
        for raw_line in srcinfo_text.splitlines():
            line = raw_line.strip()
            if not line or "=" not in line:
                continue
            key, _, value = line.partition("=")
            parser.feed(key.strip(), value.strip())
        return parser.finish()

    # -----------------------------------------------------------------------
    # Accessors
    # -----------------------------------------------------------------------

    def first_prop(self, key: str) -> Optional[str]:
        values = self.properties.get(key)
        return values[0] if values else None

    def prop(self, key: str) -> List[str]:
        return list(self.properties.get(key, []))

    def flatten_arch_prop(self, key: str) -> List[str]:
        """
        Union of `key` and every `key_<arch>` variant, deduplicated.

        The index does not distinguish architectures, so e.g. `depends_x86_64`
        values are folded into `depends`.
        """
        prefix = f"{key}_"
        values = set()
        for name, items in self.properties.items():
            if name == key or name.startswith(prefix):
                values.update(items)
        return sorted(values)

    def version(self) -> str:
        epoch = self.first_prop("epoch")
        pkgver = self.first_prop("pkgver") or DEFAULT_PKGVER
        pkgrel = self.first_prop("pkgrel") or DEFAULT_PKGREL
        if epoch:
            return f"{epoch}:{pkgver}-{pkgrel}"
        return f"{pkgver}-{pkgrel}"

    def to_details(self, branch: str, commit_id: str) -> PackageDetails:
        """Convert to the record stored in the index for `branch` at `commit_id`."""
        flattened = {
            field: self.flatten_arch_prop(key) for field, key in ARCH_FLATTENED_PROPS.items()
        }
        return PackageDetails(
            info=PackageInfo(
                branch=branch,
                pkg_name=self.pkgname,
                pkg_desc=self.first_prop("pkgdesc"),
                version=self.version(),
                url=self.first_prop("url"),
                commit_id=commit_id,
            ),
            groups=sorted(set(self.prop("groups"))),
            **flattened,
        )


def srcinfo_to_details(branch: str, commit_id: str, srcinfo_text: str) -> List[PackageDetails]:
    return [pkg.to_details(branch, commit_id) for pkg in ParsedSrcInfo.parse(srcinfo_text)]


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class _NoBase:
    """Nothing opened yet; properties and pkgname lines are dropped."""


class _InBase:
    def __init__(self, base: _PkgBase):
        self.base = base


class _InPackage:
    def __init__(self, base: _PkgBase, pkg: ParsedSrcInfo):
        self.base = base
        self.pkg = pkg


_State = Union[_NoBase, _InBase, _InPackage]


def _merge_props(dst: Properties, src: Properties) -> None:
    """Copy keys from src that dst does not define; dst always wins."""
    for key, values in src.items():
        if key not in dst:
            dst[key] = list(values)


def _append_prop(properties: Properties, key: str, value: str) -> None:
    # An empty value still declares the key.
    values = properties.setdefault(key, [])
    if value:
        values.append(value)


class _SrcInfoParser:
    def __init__(self) -> None:
        self.state: _State = _NoBase()
        self.result: List[ParsedSrcInfo] = []
        self.last_base: Optional[_PkgBase] = None

    def _flush_package(self) -> None:
        if isinstance(self.state, _InPackage):
            pkg = self.state.pkg
            _merge_props(pkg.properties, self.state.base.properties)
            self.result.append(pkg)
            self.state = _InBase(self.state.base)

    def feed(self, key: str, value: str) -> None:
        if key == "pkgbase":
            self._flush_package()
            base = _PkgBase(pkgbase=value)
            self.last_base = base
            self.state = _InBase(base)
        elif key == "pkgname":
            if isinstance(self.state, _NoBase):
                logger.debug(f"Ignoring pkgname {value!r} declared before pkgbase")
                return
            self._flush_package()
            base = self.state.base
            self.state = _InPackage(base, ParsedSrcInfo(pkgbase=base.pkgbase, pkgname=value))
        elif isinstance(self.state, _InPackage):
            _append_prop(self.state.pkg.properties, key, value)
        elif isinstance(self.state, _InBase):
            _append_prop(self.state.base.properties, key, value)

    def finish(self) -> List[ParsedSrcInfo]:
        self._flush_package()
        if not self.result and self.last_base is not None:
            base = self.last_base
            self.result.append(
                ParsedSrcInfo(pkgbase=base.pkgbase, pkgname=base.pkgbase, properties=base.properties)
            )
        return self.result
