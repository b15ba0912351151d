import json
import re
from typing import List, Optional

from fastapi.responses import Response
from pydantic import BaseModel

from aur_mirror_meta.domain.models import RpcResponse

RPC_VERSION = 5

# JSONP callback names accepted by aur.archlinux.org
_CALLBACK_RE = re.compile(r"[A-Za-z0-9_.]{1,128}")


def is_valid_callback(callback: str) -> bool:
    return _CALLBACK_RE.fullmatch(callback) is not None


def error_response(message: str, version: Optional[int] = RPC_VERSION) -> RpcResponse:
    return RpcResponse(error=message, response_type="error", version=version)


def results_response(results: List[BaseModel], response_type: str) -> RpcResponse:
    return RpcResponse(
        result_count=len(results),
        results=[r.model_dump(mode="json", by_alias=True) for r in results],
        response_type=response_type,
        version=RPC_VERSION,
    )


def dump_rpc(data: RpcResponse) -> dict:
    """
    Serialize with the AUR field names.

    `error` is dropped when unset; every other null (e.g. OutOfDate) is kept.
    """
    payload = data.model_dump(mode="json", by_alias=True)
    if payload.get("error") is None:
        payload.pop("error", None)
    return payload


def create_response(
    data: RpcResponse, callback: Optional[str] = None, status_code: int = 200
) -> Response:
    """
    Render an RPC answer as JSON, or as JSONP when a callback name is given.
    """
    body = json.dumps(dump_rpc(data))
    if callback:
        return Response(
            content=f"{callback}({body});",
            media_type="application/javascript",
            status_code=status_code,
        )
    return Response(content=body, media_type="application/json", status_code=status_code)
