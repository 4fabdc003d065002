"""
Inventory Ledger

Reserves stock for a checkout as a set of per-product conditional
decrements, and releases it again when a later checkout step fails or an
order is cancelled.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Union

from ..database.products import ProductDatabase, product_db
from ..errors import InsufficientStockError, NotFoundError
from ..models.inventory import Reservation, ReservationStatus, ReservedItem, StockShortage

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InventoryLedger:
    """
    Reserve-and-decrement over the product catalog.

    Usage:
        ledger = InventoryLedger(product_db)
        reservation = ledger.reserve_and_decrement([("prod-001", 2)])
        ...
        ledger.release(reservation)   # compensate if a later step fails

    A release that times out part way is remembered in ``pending`` and
    finished by :meth:`release_pending`.
    """

    def __init__(self, products: ProductDatabase, clock: Callable[[], datetime] = utcnow):
        self.products = products
        self.clock = clock
        self._lock = threading.Lock()
        self.reservations: dict[str, Reservation] = {}
        self.pending: set[str] = set()

    def reset(self) -> None:
        with self._lock:
            self.reservations = {}
            self.pending = set()

    def reserve_and_decrement(self, items: Iterable[tuple[str, int]]) -> Reservation:
        """
        Decrement stock for every item, or for none of them.

        Each product is decremented on its own with a single conditional step.
        Items are all evaluated even after a shortfall so the caller learns
        every short product; anything already taken is then given back.

        Args:
            items: (product_id, count) pairs

        Returns:
            Active reservation holding the decremented quantities

        Raises:
            InsufficientStockError: one or more products were short
            TimeoutError: a product lock could not be acquired; stock taken
                so far has been given back
        """
        requested: dict[str, int] = {}
        for product_id, count in items:
            requested[product_id] = requested.get(product_id, 0) + count

        taken: list[ReservedItem] = []
        shortages: list[StockShortage] = []
        try:
            for product_id, count in requested.items():
                try:
                    ok, available = self.products.decrement_if_available(product_id, count)
                except NotFoundError:
                    ok, available = False, 0
                if ok:
                    taken.append(ReservedItem(product_id=product_id, count=count))
                else:
                    shortages.append(
                        StockShortage(product_id=product_id, requested=count, available=available)
                    )
        except Exception:
            self._give_back(taken)
            raise

        if shortages:
            self._give_back(taken)
            logger.warning(
                "Insufficient stock for "
                + ", ".join(f"{s.product_id} ({s.available}/{s.requested})" for s in shortages)
            )
            raise InsufficientStockError(shortages)

        reservation = self._record(taken)
        logger.info(f"Reservation {reservation.reservation_id} holds {len(taken)} product(s)")
        return reservation.model_copy(deep=True)

    def release(self, reservation: Union[Reservation, str]) -> Reservation:
        """
        Return a reservation's stock to the catalog.

        Releasing an already released reservation does nothing. If a product
        lock times out part way, the products restored so far are recorded,
        the reservation stays active and is added to ``pending``; calling
        again restores only the rest.
        """
        reservation_id = (
            reservation.reservation_id if isinstance(reservation, Reservation) else reservation
        )
        with self._lock:
            stored = self.reservations.get(reservation_id)
            if stored is None:
                raise NotFoundError("Reservation", reservation_id)
            if stored.status == ReservationStatus.RELEASED:
                return stored.model_copy(deep=True)

            try:
                for item in stored.items:
                    if item.product_id in stored.restored:
                        continue
                    self.products.restock(item.product_id, item.count)
                    stored.restored.append(item.product_id)
            except TimeoutError:
                self.pending.add(reservation_id)
                logger.warning(
                    f"Release of reservation {reservation_id} timed out after restoring "
                    f"{len(stored.restored)}/{len(stored.items)} product(s)"
                )
                raise

            stored.status = ReservationStatus.RELEASED
            stored.released_at = self.clock()
            self.pending.discard(reservation_id)

        logger.info(f"Reservation {reservation_id} released")
        return stored.model_copy(deep=True)

    def release_pending(self) -> list[str]:
        """
        Retry releases that timed out earlier.

        Returns:
            IDs of the reservations released by this call
        """
        released = []
        for reservation_id in sorted(self.pending):
            try:
                self.release(reservation_id)
            except TimeoutError:
                continue
            released.append(reservation_id)
        return released

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        reservation = self.reservations.get(reservation_id)
        return reservation.model_copy(deep=True) if reservation else None

    def _record(self, items: list[ReservedItem]) -> Reservation:
        reservation = Reservation(
            reservation_id=str(uuid.uuid4()),
            items=tuple(items),
            created_at=self.clock(),
        )
        with self._lock:
            self.reservations[reservation.reservation_id] = reservation
        return reservation

    def _give_back(self, taken: list[ReservedItem]) -> None:
        """Undo a failed attempt; a timed out give-back is left pending"""
        if not taken:
            return
        reservation = self._record(taken)
        try:
            self.release(reservation.reservation_id)
        except TimeoutError:
            logger.warning(
                f"Stock of failed attempt kept in pending reservation {reservation.reservation_id}"
            )


# Singleton instance
inventory_ledger = InventoryLedger(product_db)
