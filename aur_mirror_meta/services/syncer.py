"""
Incremental sync from the AUR mirror into the package index.

Only branches whose upstream commit differs from the indexed one are fetched.
A producer task fetches .SRCINFO batches and feeds a bounded queue; the
consumer drains it in groups and writes each group in one transaction, so a
branch's old rows, commit pointer and new rows always change together.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from aur_mirror_meta.core.errors import TransportError
from aur_mirror_meta.domain.models import PackageDetails, SyncTask
from aur_mirror_meta.domain.srcinfo import srcinfo_to_details
from aur_mirror_meta.services.aur_fetcher import AurFetcher
from aur_mirror_meta.storage.db_manager import IndexStore

logger = logging.getLogger(__name__)

BATCH_SIZE = 150

# Marks the end of the producer's output.
_DONE = None


def compute_diff(upstream: Dict[str, str], existing: Dict[str, str]) -> List[Tuple[str, str]]:
    """
    Branches whose upstream commit is new or differs from the indexed one.

    Branches that vanished upstream are not reported; they are left as they are.
    """
    return [
        (branch, commit)
        for branch, commit in sorted(upstream.items())
        if existing.get(branch) != commit
    ]


def chunked(items: List[Tuple[str, str]], size: int) -> List[List[Tuple[str, str]]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class Syncer:
    def __init__(self, store: IndexStore, fetcher: AurFetcher, batch_size: int = BATCH_SIZE):
        self.store = store
        self.fetcher = fetcher
        self.batch_size = batch_size

    # -----------------------------------------------------------------------
    # Producer
    # -----------------------------------------------------------------------

    async def _produce(
        self, to_process: List[Tuple[str, str]], queue: "asyncio.Queue[Optional[SyncTask]]"
    ) -> None:
        try:
            for batch in chunked(to_process, self.batch_size):
                try:
                    texts = await self.fetcher.fetch_descriptions([commit for _, commit in batch])
                except TransportError as e:
                    # The batch stays stale and is picked up again by the next sync.
                    logger.error(f"Error fetching batch of {len(batch)} branches: {e}")
                    continue

                for (branch, commit), text in zip(batch, texts):
                    await queue.put(SyncTask(branch=branch, commit_id=commit, srcinfo_text=text))
        except Exception:
            await queue.put(_DONE)
            raise
        await queue.put(_DONE)

    # -----------------------------------------------------------------------
    # Consumer
    # -----------------------------------------------------------------------

    async def _drain(self, queue: "asyncio.Queue[Optional[SyncTask]]") -> Tuple[List[SyncTask], bool]:
        """
        Wait for one task, then take whatever else is queued, up to the batch size.

        Returns the group and whether the producer has finished.
        """
        group: List[SyncTask] = []
        item = await queue.get()
        while True:
            if item is _DONE:
                return group, True
            group.append(item)
            if len(group) >= self.batch_size or queue.empty():
                return group, False
            item = queue.get_nowait()

    def write_group(self, group: List[SyncTask]) -> int:
        """
        Replace the indexed state of every branch in the group in one transaction.

        Returns the number of package records written.
        """
        packages: List[PackageDetails] = []
        with self.store.transaction() as tx:
            for task in group:
                tx.clear(task.branch)
                tx.set_branch_commit(task.branch, task.commit_id)

                branch_packages = srcinfo_to_details(task.branch, task.commit_id, task.srcinfo_text)
                if not branch_packages:
                    logger.warning(
                        f"No packages found for branch {task.branch} ({task.commit_id[:8]})"
                    )
                packages.extend(branch_packages)

            if packages:
                tx.upsert_records(packages)
            tx.commit()
        return len(packages)

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------

    async def sync(self) -> int:
        """
        Run one sync pass. Returns the number of package records written.

        Fetch failures only skip their batch; a StorageError aborts the whole
        pass after rolling back the group being written.
        """
        logger.info("Starting sync operation...")

        if not self.fetcher.github_token:
            logger.warning("No GitHub token configured. You may hit rate limits.")

        logger.info("Fetching branch list from AUR Mirror...")
        branches = await self.fetcher.list_branches()

        logger.info(f"Found {len(branches)} branches, comparing to existing...")
        existing = await asyncio.to_thread(self.store.existing_commits)
        to_process = compute_diff(branches, existing)

        logger.info(f"Need to process {len(to_process)} updated branches")
        if not to_process:
            logger.info("All branches are up to date")
            return 0

        queue: "asyncio.Queue[Optional[SyncTask]]" = asyncio.Queue(maxsize=self.batch_size * 2)
        producer = asyncio.create_task(self._produce(to_process, queue))

        processed_packages = 0
        try:
            done = False
            while not done:
                group, done = await self._drain(queue)
                if not group:
                    continue
                processed_packages += await asyncio.to_thread(self.write_group, group)
                logger.info(f"Processed {processed_packages} packages")
        except BaseException:
            producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)
            raise

        await producer

        logger.info(f"Sync completed successfully. Processed {processed_packages} packages")
        return processed_packages
