"""
AUR RPC (v5) compatible search/info endpoint.

Clients such as AUR helpers talk to `/rpc` exactly as they would to
aur.archlinux.org. Invalid requests are answered with an RPC error object and
HTTP 200, like the official endpoint.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool

from aur_mirror_meta.core.dependencies import get_index_store
from aur_mirror_meta.core.errors import StorageError
from aur_mirror_meta.domain.models import RpcPackageDetails, RpcPackageInfo, SearchType
from aur_mirror_meta.domain.rpc_utils import (
    RPC_VERSION,
    create_response,
    error_response,
    is_valid_callback,
    results_response,
)
from aur_mirror_meta.storage.db_manager import IndexStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/rpc")
async def rpc_get(
    v: Optional[str] = None,
    request_type: Optional[str] = Query(default=None, alias="type"),
    by: Optional[str] = None,
    arg: List[str] = Query(default=[]),
    arg_list: List[str] = Query(default=[], alias="arg[]"),
    callback: Optional[str] = None,
    store: IndexStore = Depends(get_index_store),
) -> Response:
    if callback and not is_valid_callback(callback):
        return create_response(error_response("Invalid callback name."), status_code=400)
    return await handle_rpc_request(store, v, request_type, by, arg + arg_list, callback)


@router.post("/rpc")
async def rpc_post(request: Request, store: IndexStore = Depends(get_index_store)) -> Response:
    form = await request.form()
    args = [str(a) for a in form.getlist("arg")] + [str(a) for a in form.getlist("arg[]")]

    def field(name: str) -> Optional[str]:
        value = form.get(name)
        return str(value) if value is not None else None

    # POST does not support JSONP.
    return await handle_rpc_request(store, field("v"), field("type"), field("by"), args, None)


async def handle_rpc_request(
    store: IndexStore,
    version: Optional[str],
    request_type: Optional[str],
    search_by: Optional[str],
    args: List[str],
    callback: Optional[str],
) -> Response:
    if version is None:
        return create_response(error_response("Please specify an API version.", None), callback)
    if version != str(RPC_VERSION):
        try:
            parsed_version: Optional[int] = int(version)
        except ValueError:
            parsed_version = None
        return create_response(
            error_response("Invalid version specified.", parsed_version), callback
        )

    if request_type is None:
        return create_response(error_response("No request type/data specified."), callback)

    if request_type == "search":
        return await handle_search(store, search_by, args[0] if args else "", callback)
    if request_type == "info":
        return await handle_info(store, args, callback)
    return create_response(error_response("Incorrect request type specified."), callback)


async def handle_search(
    store: IndexStore,
    search_by: Optional[str],
    keyword: str,
    callback: Optional[str],
) -> Response:
    if not keyword:
        return create_response(error_response("Query arg too small."), callback)

    search_type = SearchType.from_str(search_by or SearchType.NAME_DESC.value)
    if search_type is None:
        return create_response(error_response("Incorrect by field specified."), callback)

    try:
        rows = await run_in_threadpool(store.search_packages, search_type, keyword)
    except StorageError as e:
        logger.error(f"Database error during search: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    results = [RpcPackageInfo.from_info(row) for row in rows]
    return create_response(results_response(results, "search"), callback)


async def handle_info(store: IndexStore, args: List[str], callback: Optional[str]) -> Response:
    if not args:
        return create_response(error_response("No request type/data specified."), callback)

    try:
        details = await run_in_threadpool(store.get_package_details, args)
    except StorageError as e:
        logger.error(f"Database error during info lookup: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    results = [RpcPackageDetails.from_details(d) for d in details]
    return create_response(results_response(results, "multiinfo"), callback)
