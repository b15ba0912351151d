"""
Client for the GitHub mirror of the AUR (github.com/archlinux/aur).

Two capabilities are needed: listing the (branch -> commit) pairs from the git
ref advertisement, and reading `.SRCINFO` at many commits in one GraphQL call.
The GraphQL call honours GitHub's rate-limit headers by sleeping and resending
the identical request.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from contextlib import asynccontextmanager
from email.utils import parsedate_to_datetime
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from aur_mirror_meta import __version__
from aur_mirror_meta.core.errors import FetchError, UpstreamError
from aur_mirror_meta.domain.models import GqlSrcInfoResponse

logger = logging.getLogger(__name__)

AUR_GIT_URL = "https://github.com/archlinux/aur.git"
AUR_GIT_UPLOAD_PACK_GET_URL = f"{AUR_GIT_URL}/info/refs?service=git-upload-pack"
AUR_GIT_UPLOAD_PACK_POST_URL = f"{AUR_GIT_URL}/git-upload-pack"
AUR_ARCHIVE_URL = "https://github.com/archlinux/aur/archive"
GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
SRCINFO_PATH = ".SRCINFO"

# Added to every rate-limit wait so we do not resend right at the boundary.
RETRY_AFTER_FINETUNING = 15

# The upstream's own tooling branch, not a package.
EXCLUDED_BRANCHES = {"main"}

# pkt-line length prefix (4 hex chars) + 40 hex object id + ref name, which ends at
# whitespace or at the NUL before the capability list on the first advertised ref
_REF_LINE_RE = re.compile(r"([0-9a-fA-F]{4})([0-9a-fA-F]{40}) refs/heads/([^\s\x00]+)")


def user_agent() -> str:
    return f"AUR-Mirror-Meta/{__version__}"


def parse_ref_advertisement(text: str) -> Dict[str, str]:
    """
    Extract branch -> commit pairs from a smart-HTTP ref advertisement.

    Lines that are not `refs/heads/` entries, or do not have a length prefix
    and a full object id, are skipped.
    """
    branches: Dict[str, str] = {}
    for line in text.splitlines():
        match = _REF_LINE_RE.search(line)
        if not match:
            continue
        _, commit_id, branch = match.groups()
        if branch in EXCLUDED_BRANCHES:
            continue
        branches[branch] = commit_id.lower()
    return branches


def build_srcinfo_query(commit_ids: Sequence[str]) -> str:
    """GraphQL query reading .SRCINFO at each commit, aliased x0..xN by position."""
    parts = ['query{repository(owner:"archlinux",name:"aur"){']
    for i, commit in enumerate(commit_ids):
        parts.append(f'x{i}:object(expression:"{commit}:{SRCINFO_PATH}"){{... on Blob{{text}}}}')
    parts.append("}}")
    return "".join(parts)


class AurFetcher:
    """
    Stateless upstream client; safe to share between concurrent callers.

    `client`, `sleep` and `clock` are injectable for tests. Without a client a
    short-lived `httpx.AsyncClient` is opened per call.
    """

    def __init__(
        self,
        github_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        timeout: float = 60.0,
    ):
        self.github_token = github_token
        self.client = client
        self.sleep = sleep
        self.clock = clock
        self.timeout = timeout

    @asynccontextmanager
    async def _open_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.client is not None:
            yield self.client
            return
        async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
            yield client

    # -----------------------------------------------------------------------
    # Branch listing
    # -----------------------------------------------------------------------

    async def list_branches(self) -> Dict[str, str]:
        """
        Current branch -> commit map of the mirror, without `main`.
        """
        auth = (self.github_token, "") if self.github_token else None
        try:
            async with self._open_client() as client:
                response = await client.get(
                    AUR_GIT_UPLOAD_PACK_GET_URL,
                    auth=auth,
                    headers={"User-Agent": user_agent()},
                )
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to fetch refs: {e}") from e

        if not response.is_success:
            raise FetchError(f"Failed to fetch refs: {response.status_code}")

        branches = parse_ref_advertisement(response.text)
        logger.debug(f"Ref advertisement lists {len(branches)} branches")
        return branches

    # -----------------------------------------------------------------------
    # Batched .SRCINFO fetch
    # -----------------------------------------------------------------------

    def _rate_limit_wait(self, response: httpx.Response) -> Optional[float]:
        """
        Seconds to wait before resending, or None when the response carries no
        rate-limit signal.
        """
        retry_after = response.headers.get("retry-after")
        if retry_after:
            retry_after = retry_after.strip()
            try:
                return int(retry_after) + RETRY_AFTER_FINETUNING
            except ValueError:
                pass
            try:
                retry_at = parsedate_to_datetime(retry_after)
            except (TypeError, ValueError):
                retry_at = None
            if retry_at is not None:
                return retry_at.timestamp() - self.clock() + RETRY_AFTER_FINETUNING

        remaining = response.headers.get("x-ratelimit-remaining")
        if remaining is not None and remaining.strip() == "0":
            now = self.clock()
            try:
                reset_at = float(int(response.headers.get("x-ratelimit-reset", "")))
            except ValueError:
                reset_at = now
            return reset_at - now + RETRY_AFTER_FINETUNING

        return None

    async def _post_graphql(self, content: bytes) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": user_agent(),
        }
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"

        async with self._open_client() as client:
            while True:
                try:
                    response = await client.post(GITHUB_GRAPHQL_URL, content=content, headers=headers)
                except httpx.HTTPError as e:
                    raise FetchError(f"GitHub API request failed: {e}") from e

                wait_time = self._rate_limit_wait(response)
                if wait_time is not None:
                    if wait_time > 0:
                        logger.info(f"Rate limited. Waiting {wait_time:.0f} seconds...")
                        await self.sleep(wait_time)
                    continue

                if response.is_success:
                    return response
                raise UpstreamError(f"GitHub API error: {response.status_code}")

    async def fetch_descriptions(self, commit_ids: Sequence[str]) -> List[str]:
        """
        .SRCINFO text at each commit, in input order.

        A commit without a .SRCINFO yields "" at its position.
        """
        commit_ids = list(commit_ids)
        if not commit_ids:
            return []

        # Serialized once so every retry sends exactly the same bytes.
        content = json.dumps({"query": build_srcinfo_query(commit_ids)}).encode("utf-8")
        response = await self._post_graphql(content)

        try:
            payload = GqlSrcInfoResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UpstreamError(f"Malformed GraphQL response: {e}") from e

        if payload.errors is not None:
            messages = "; ".join(err.message for err in payload.errors)
            raise UpstreamError(f"GraphQL errors: {messages}")
        if payload.data is None:
            raise UpstreamError("No data in GraphQL response")

        repository = payload.data.repository
        result = []
        for i in range(len(commit_ids)):
            blob = repository.get(f"x{i}")
            result.append(blob.text if blob is not None and blob.text is not None else "")
        return result
