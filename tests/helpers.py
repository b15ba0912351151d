"""
Sample .SRCINFO blobs and helpers shared by the tests.
"""

from aur_mirror_meta.domain.srcinfo import srcinfo_to_details

PARU_COMMIT = "1671c778dfeab04b64686baf782c5baa2d96b2ec"
FOO_COMMIT = "8b2d5c1e0f3a4b6c7d8e9f0a1b2c3d4e5f6a7b8c"

PARU_SRCINFO = """\
pkgbase = paru
\tpkgdesc = Feature packed AUR helper
\tpkgver = 2.0.4
\tpkgrel = 1
\turl = https://github.com/morganamilo/paru
\tarch = x86_64
\tarch = aarch64
\tlicense = GPL-3.0-or-later
\tmakedepends = cargo
\tdepends = git
\tdepends = pacman>=6.1
\tdepends_x86_64 = glibc
\toptdepends = bat: colored pkgbuild printing
\tbackup = etc/paru.conf

pkgname = paru
"""

SPLIT_SRCINFO = """\
pkgbase = python-foo
\tpkgdesc = Shared description
\tpkgver = 1.2
\tpkgrel = 3
\tepoch = 1
\tdepends = python
\tmakedepends = python-build

pkgname = python-foo
\tdepends = python-bar

pkgname = python-foo-docs
\tpkgdesc = Documentation for foo
\tgroups = docs
"""


def write_branch(store, branch, commit_id, srcinfo_text):
    """Commit the records of one .SRCINFO for a branch, the way the syncer does."""
    with store.transaction() as tx:
        tx.clear(branch)
        tx.set_branch_commit(branch, commit_id)
        tx.upsert_records(srcinfo_to_details(branch, commit_id, srcinfo_text))
        tx.commit()
