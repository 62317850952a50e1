"""
Pagination - lazy iteration over paged load balancer list calls.
"""

import logging
from typing import AsyncIterator, List, Optional, Set

from client import RemoteCaller, SlbClient
from models import LoadBalancer

logger = logging.getLogger(__name__)


class LoadBalancerPages:
    """
    Async iterator over the pages of a region's load balancers.

    Pages are requested one at a time starting at page 1. Iteration stops
    on an empty page, a short page (fewer than ``page_size`` records), or
    once the reported total count has been reached. The iterator is
    single-use: once exhausted it stays exhausted.

    Any remote error propagates to the caller; there is no partial-result
    suppression and no retry, so the caller decides whether to restart.
    """

    def __init__(
        self,
        client: SlbClient,
        region: str,
        page_size: int,
        caller: Optional[RemoteCaller] = None,
    ):
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.client = client
        self.region = region
        self.page_size = page_size
        self.caller = caller or RemoteCaller()
        self.calls = 0
        self._page_number = 1
        self._seen = 0
        self._done = False
        self._seen_ids: Set[str] = set()

    def __aiter__(self) -> AsyncIterator[List[LoadBalancer]]:
        return self

    async def __anext__(self) -> List[LoadBalancer]:
        while not self._done:
            page = await self.caller.call_once(
                "DescribeLoadBalancers",
                self.client.list_load_balancers,
                self.region,
                self.page_size,
                self._page_number,
            )
            self.calls += 1
            self._page_number += 1

            records = page.records
            self._seen += len(records)
            if len(records) < self.page_size:
                self._done = True
            elif page.total_count is not None and self._seen >= page.total_count:
                self._done = True

            batch = self._dedupe(records)
            if batch:
                return batch

        raise StopAsyncIteration

    def _dedupe(self, records: List[LoadBalancer]) -> List[LoadBalancer]:
        # Listings shift under concurrent deletes; never yield an id twice
        batch = []
        for record in records:
            if record.load_balancer_id in self._seen_ids:
                logger.debug(f"Skipping duplicate SLB {record.load_balancer_id}")
                continue
            self._seen_ids.add(record.load_balancer_id)
            batch.append(record)
        return batch


async def list_all_load_balancers(
    client: SlbClient,
    region: str,
    page_size: int,
    caller: Optional[RemoteCaller] = None,
) -> List[LoadBalancer]:
    """Collect every load balancer in a region into one list."""
    records: List[LoadBalancer] = []
    async for batch in LoadBalancerPages(client, region, page_size, caller):
        records.extend(batch)
    logger.debug(f"Listed {len(records)} SLBs in region {region}")
    return records
