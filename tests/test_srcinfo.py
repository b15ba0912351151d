"""
Tests for the .SRCINFO parser.

Tests validate:
- Base / split package property inheritance
- Architecture-suffixed property flattening
- Version formatting and defaults
- Tolerance of empty and malformed input
"""

from aur_mirror_meta.domain.srcinfo import ParsedSrcInfo, srcinfo_to_details

from tests.helpers import PARU_COMMIT, PARU_SRCINFO, SPLIT_SRCINFO


class TestParse:
    """Tests for ParsedSrcInfo.parse."""

    def test_empty_input_yields_no_packages(self):
        assert ParsedSrcInfo.parse("") == []
        assert ParsedSrcInfo.parse("   \n\t\n") == []

    def test_single_package(self):
        packages = ParsedSrcInfo.parse(PARU_SRCINFO)

        assert len(packages) == 1
        pkg = packages[0]
        assert pkg.pkgbase == "paru"
        assert pkg.pkgname == "paru"
        assert pkg.first_prop("pkgdesc") == "Feature packed AUR helper"
        assert pkg.prop("arch") == ["x86_64", "aarch64"]

    def test_split_packages_inherit_from_base(self):
        foo, docs = ParsedSrcInfo.parse(SPLIT_SRCINFO)

        assert foo.pkgname == "python-foo"
        assert docs.pkgname == "python-foo-docs"
        assert foo.pkgbase == docs.pkgbase == "python-foo"
        # Not set by the split package: inherited from the base.
        assert foo.first_prop("pkgdesc") == "Shared description"
        assert docs.prop("makedepends") == ["python-build"]
        assert docs.prop("depends") == ["python"]

    def test_package_value_wins_over_base(self):
        foo, docs = ParsedSrcInfo.parse(SPLIT_SRCINFO)

        assert foo.prop("depends") == ["python-bar"]
        assert docs.first_prop("pkgdesc") == "Documentation for foo"

    def test_empty_value_declares_key_and_blocks_inheritance(self):
        text = "pkgbase = foo\ndepends = python\npkgname = foo\ndepends =\n"

        (pkg,) = ParsedSrcInfo.parse(text)

        assert pkg.properties["depends"] == []
        assert pkg.prop("depends") == []

    def test_base_without_pkgname_is_synthesized(self):
        text = "pkgbase = lonely\npkgver = 3.1\npkgrel = 2\n"

        (pkg,) = ParsedSrcInfo.parse(text)

        assert pkg.pkgbase == "lonely"
        assert pkg.pkgname == "lonely"
        assert pkg.version() == "3.1-2"

    def test_pkgname_before_pkgbase_is_ignored(self):
        text = "pkgname = orphan\npkgver = 1\n"

        assert ParsedSrcInfo.parse(text) == []

    def test_malformed_lines_are_skipped(self):
        text = "# comment\npkgbase = foo\nthis line has no separator\npkgver = 1.0\npkgname = foo\n"

        (pkg,) = ParsedSrcInfo.parse(text)

        assert pkg.version() == "1.0-1"

    def test_value_may_contain_equals_sign(self):
        (pkg,) = ParsedSrcInfo.parse(PARU_SRCINFO)

        assert "pacman>=6.1" in pkg.prop("depends")

    def test_second_pkgbase_closes_previous_package(self):
        text = "pkgbase = a\npkgver = 1\npkgname = a\npkgbase = b\npkgver = 2\npkgname = b\n"

        a, b = ParsedSrcInfo.parse(text)

        assert (a.pkgbase, a.version()) == ("a", "1-1")
        assert (b.pkgbase, b.version()) == ("b", "2-1")


class TestAccessors:
    """Tests for the derived property accessors."""

    def test_first_prop_and_prop_on_missing_key(self):
        pkg = ParsedSrcInfo(pkgbase="x", pkgname="x")

        assert pkg.first_prop("url") is None
        assert pkg.prop("depends") == []

    def test_flatten_arch_prop_is_deduplicated_union(self):
        pkg = ParsedSrcInfo(
            pkgbase="x",
            pkgname="x",
            properties={"depends": ["a"], "depends_x86_64": ["b"], "depends_i686": ["a"]},
        )

        assert set(pkg.flatten_arch_prop("depends")) == {"a", "b"}
        assert len(pkg.flatten_arch_prop("depends")) == 2

    def test_flatten_arch_prop_ignores_other_keys_with_same_prefix(self):
        pkg = ParsedSrcInfo(
            pkgbase="x",
            pkgname="x",
            properties={"depends": ["a"], "dependsfoo": ["z"], "makedepends": ["m"]},
        )

        assert pkg.flatten_arch_prop("depends") == ["a"]

    def test_version_with_epoch(self):
        pkg = ParsedSrcInfo(
            pkgbase="x",
            pkgname="x",
            properties={"epoch": ["2"], "pkgver": ["1.0"], "pkgrel": ["3"]},
        )

        assert pkg.version() == "2:1.0-3"

    def test_version_without_epoch(self):
        pkg = ParsedSrcInfo(pkgbase="x", pkgname="x", properties={"pkgver": ["1.0"], "pkgrel": ["3"]})

        assert pkg.version() == "1.0-3"

    def test_version_defaults(self):
        pkg = ParsedSrcInfo(pkgbase="x", pkgname="x")

        assert pkg.version() == "0.0.1-1"


class TestToDetails:
    """Tests for conversion into index records."""

    def test_paru_record(self):
        (details,) = srcinfo_to_details("paru", PARU_COMMIT, PARU_SRCINFO)

        assert details.info.branch == "paru"
        assert details.info.pkg_name == "paru"
        assert details.info.commit_id == PARU_COMMIT
        assert details.info.version == "2.0.4-1"
        assert details.info.url == "https://github.com/morganamilo/paru"
        assert sorted(details.depends) == ["git", "glibc", "pacman>=6.1"]
        assert details.make_depends == ["cargo"]
        assert details.opt_depends == ["bat: colored pkgbuild printing"]
        assert details.check_depends == []
        assert details.groups == []

    def test_split_records_share_branch_and_commit(self):
        records = srcinfo_to_details("python-foo", "c0ffee", SPLIT_SRCINFO)

        assert [r.info.pkg_name for r in records] == ["python-foo", "python-foo-docs"]
        assert {r.info.branch for r in records} == {"python-foo"}
        assert {r.info.commit_id for r in records} == {"c0ffee"}
        assert records[0].info.version == "1:1.2-3"
        assert records[1].groups == ["docs"]

    def test_empty_description_yields_no_records(self):
        assert srcinfo_to_details("gone", "abc", "") == []
