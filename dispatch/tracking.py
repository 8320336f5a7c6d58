"""
Purpose: Live GPS ingestion for orders that are out for delivery.
What it does:
Accepts (lat, lon, timestamp) fixes for an (order, partner) pair and appends them
while the order is out_for_delivery. Fixes outside that window are dropped, not
rejected: a tracker that is stopping can still emit after delivery is confirmed.

TrackingChannel gives a stream an explicit start/stop lifecycle; the fulfillment
service opens one when an order goes out for delivery and closes it when the
order is delivered or cancelled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Iterable, Optional

from orders.models import OrderStatus, TrackingPoint

logger = logging.getLogger(__name__)


class IngestResult(str, Enum):
    ACCEPTED = "accepted"
    IGNORED = "ignored"


@dataclass(frozen=True)
class GpsFix:
    lat: float
    lon: float
    recorded_at: Optional[datetime] = None


class TrackingIngest:

    def __init__(self, orders, clock: Optional[Callable[[], datetime]] = None):
        self.orders = orders
        self.clock = clock or datetime.now

    def ingest_fix(self, order_id: str, partner_id: str, lat: float, lon: float,
                   recorded_at: Optional[datetime] = None) -> IngestResult:
        """
        Append one fix. No deduplication: every accepted fix is stored.
        """
        order = self.orders.get(order_id)
        if order is None or order.status != OrderStatus.OUT_FOR_DELIVERY:
            logger.debug("Dropping fix for order %s: not out for delivery", order_id)
            return IngestResult.IGNORED
        if order.delivery_partner_id != partner_id:
            logger.debug("Dropping fix for order %s: partner %s is not assigned", order_id, partner_id)
            return IngestResult.IGNORED
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            logger.debug("Dropping fix for order %s: bad coordinate (%s, %s)", order_id, lat, lon)
            return IngestResult.IGNORED

        self.orders.append_tracking(TrackingPoint(
            order_id=order_id,
            partner_id=partner_id,
            lat=lat,
            lon=lon,
            recorded_at=recorded_at or self.clock(),
        ))
        return IngestResult.ACCEPTED


class TrackingChannel:
    """
    One (order, partner) fix stream. Fixes pushed while the channel is closed are ignored.
    """

    def __init__(self, ingest: TrackingIngest, order_id: str, partner_id: str):
        self.ingest = ingest
        self.order_id = order_id
        self.partner_id = partner_id
        self.is_open = False

    def start(self) -> None:
        self.is_open = True

    def stop(self) -> None:
        self.is_open = False

    def push(self, fix: GpsFix) -> IngestResult:
        if not self.is_open:
            return IngestResult.IGNORED
        return self.ingest.ingest_fix(self.order_id, self.partner_id, fix.lat, fix.lon, fix.recorded_at)

    def consume(self, fixes: Iterable[GpsFix]) -> int:
        """
        Drain a synchronous stream until it ends or the channel is stopped.
        Returns how many fixes were stored.
        """
        accepted = 0
        for fix in fixes:
            if not self.is_open:
                break
            if self.push(fix) == IngestResult.ACCEPTED:
                accepted += 1
        return accepted

    async def consume_async(self, fixes: AsyncIterator[GpsFix]) -> int:
        accepted = 0
        async for fix in fixes:
            if not self.is_open:
                break
            if self.push(fix) == IngestResult.ACCEPTED:
                accepted += 1
        return accepted


class TrackingRegistry:
    """
    Open channels by order id.
    """

    def __init__(self, ingest: TrackingIngest):
        self.ingest = ingest
        self._channels: Dict[str, TrackingChannel] = {}

    def start(self, order_id: str, partner_id: str) -> TrackingChannel:
        channel = self._channels.get(order_id)
        if channel is None or channel.partner_id != partner_id:
            if channel is not None:
                channel.stop()
            channel = TrackingChannel(self.ingest, order_id, partner_id)
            self._channels[order_id] = channel
        channel.start()
        logger.info("Live tracking started for order %s (partner %s)", order_id, partner_id)
        return channel

    def stop(self, order_id: str) -> None:
        channel = self._channels.pop(order_id, None)
        if channel is not None:
            channel.stop()
            logger.info("Live tracking stopped for order %s", order_id)

    def get(self, order_id: str) -> Optional[TrackingChannel]:
        return self._channels.get(order_id)
