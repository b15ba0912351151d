"""
Snapshot and git smart-HTTP endpoints.

`git clone http://<host>/<pkgbase>.git` works against this server: the ref
advertisement is synthesized from the indexed commit (the package branch is
presented as `master`), and the pack negotiation is streamed to the GitHub
mirror, which holds every package branch in one repository.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, RedirectResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from aur_mirror_meta.core.dependencies import get_github_token, get_index_store
from aur_mirror_meta.core.errors import StorageError
from aur_mirror_meta.services.aur_fetcher import AUR_ARCHIVE_URL, AUR_GIT_UPLOAD_PACK_POST_URL
from aur_mirror_meta.storage.db_manager import IndexStore

logger = logging.getLogger(__name__)
router = APIRouter()

UPLOAD_PACK_SERVICE = "git-upload-pack"
ADVERTISED_CAPABILITIES = (
    "multi_ack thin-pack side-band side-band-64k ofs-delta no-progress include-tag "
    "multi_ack_detailed no-done symref=HEAD:refs/heads/master object-format=sha1 "
    "agent=git/aur-mirror"
)

# Request headers that must not be forwarded to GitHub.
_DROPPED_REQUEST_HEADERS = {"host", "authorization", "connection", "transfer-encoding"}
# Response headers recomputed by our own server.
_DROPPED_RESPONSE_HEADERS = {"connection", "transfer-encoding"}


def pkt_line(payload: str) -> str:
    """Frame one git pkt-line (4 hex digit length prefix includes itself)."""
    return f"{len(payload.encode('utf-8')) + 4:04x}{payload}"


def build_ref_advertisement(commit_id: str) -> str:
    return (
        pkt_line(f"# service={UPLOAD_PACK_SERVICE}\n")
        + "0000"
        + pkt_line(f"{commit_id} HEAD\0{ADVERTISED_CAPABILITIES}\n")
        + pkt_line(f"{commit_id} refs/heads/master\n")
        + "0000"
    )


def create_upstream_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=None)


def _strip_git_suffix(branch: str) -> str:
    return branch[: -len(".git")] if branch.endswith(".git") else branch


async def _lookup_commit(store: IndexStore, branch: str) -> str:
    try:
        commit_id = await run_in_threadpool(store.get_branch_commit_id, branch)
    except StorageError as e:
        logger.error(f"Database error looking up branch {branch}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    if commit_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return commit_id


@router.get("/cgit/aur.git/snapshot/{snapshot_name}")
async def snapshot(snapshot_name: str, store: IndexStore = Depends(get_index_store)) -> Response:
    """Redirect a cgit-style snapshot download to GitHub's archive of the indexed commit."""
    if not snapshot_name.endswith(".tar.gz"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    branch = snapshot_name[: -len(".tar.gz")]
    commit_id = await _lookup_commit(store, branch)
    return RedirectResponse(
        url=f"{AUR_ARCHIVE_URL}/{commit_id}.tar.gz",
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.get("/{branch}/info/refs")
async def git_info_refs(
    branch: str,
    service: Optional[str] = None,
    store: IndexStore = Depends(get_index_store),
) -> Response:
    if service is None:
        # Dumb-HTTP clients are not supported.
        return PlainTextResponse("Please upgrade your git client.", status_code=status.HTTP_403_FORBIDDEN)
    if service != UPLOAD_PACK_SERVICE:
        return PlainTextResponse("Unsupported service", status_code=status.HTTP_403_FORBIDDEN)

    commit_id = await _lookup_commit(store, _strip_git_suffix(branch))
    return Response(
        content=build_ref_advertisement(commit_id),
        media_type="application/x-git-upload-pack-advertisement",
    )


@router.post("/{branch}/git-upload-pack")
async def git_upload_pack(
    branch: str,
    request: Request,
    store: IndexStore = Depends(get_index_store),
    github_token: Optional[str] = Depends(get_github_token),
) -> Response:
    await _lookup_commit(store, _strip_git_suffix(branch))

    headers = {
        key: value
        for key, value in request.headers.items()
        if key.lower() not in _DROPPED_REQUEST_HEADERS
    }
    auth = (github_token, "") if github_token else None

    client = create_upstream_client()
    upstream_request = client.build_request(
        "POST", AUR_GIT_UPLOAD_PACK_POST_URL, headers=headers, content=request.stream()
    )
    try:
        upstream = await client.send(upstream_request, auth=auth, stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        logger.error(f"Failed to proxy git-upload-pack for {branch}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    async def close_upstream() -> None:
        await upstream.aclose()
        await client.aclose()

    response_headers = {
        key: value
        for key, value in upstream.headers.items()
        if key.lower() not in _DROPPED_RESPONSE_HEADERS
    }
    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers=response_headers,
        background=BackgroundTask(close_upstream),
    )
