"""
Impatience subsystem: orbit re-entry of retrial customers and reneging
of customers who waited past their patience.
"""

import logging
from dataclasses import replace

from queue_node.entities import BalkedCustomer, Customer
from queue_node.event_log import EventType
from queue_node.state import Holder, Owner

logger = logging.getLogger(__name__)


class ImpatienceSubsystem:
    """Retrials and reneging for one engine."""

    def __init__(self, engine):
        self.engine = engine

    def process_retrials(self, new_time: float):
        """Re-admit every orbiting customer whose retry time has come.

        Each retry is a fresh arrival attempt: the arrival time is reset
        so the wait of this attempt is measured from now.

        Args:
            new_time: End of the current tick
        """
        engine = self.engine
        state = engine.state
        due = [
            cid for cid in state.orbit
            if state.arena[cid].next_retry_time is not None
            and new_time >= state.arena[cid].next_retry_time
        ]
        for cid in due:
            customer = state.take(cid, (Holder.ORBIT, None))
            customer.arrival_time = new_time
            customer.balk_time = None
            customer.is_retrial = True
            state.customers_retried += 1
            engine.emit(EventType.ORBIT_RETRY, cid, new_time)
            engine.arrivals.admit(new_time, existing=customer)

    def process_reneging(self, new_time: float):
        """Remove every waiting customer whose patience has run out."""
        state = self.engine.state
        self.check_line((Holder.QUEUE, None), new_time)
        for server in list(state.servers):
            if server.queue:
                self.check_line((Holder.DEDICATED, server.server_id), new_time)

    def check_line(self, owner: Owner, new_time: float):
        state = self.engine.state
        expired = []
        for cid in state.collection(owner):
            customer = state.arena[cid]
            if customer.patience_time is None:
                continue
            if new_time - customer.arrival_time >= customer.patience_time:
                expired.append(cid)

        for cid in expired:
            self.abandon(state.take(cid, owner), new_time)

    def abandon(self, customer: Customer, time: float):
        """A reneging customer goes to orbit or is lost, counted once."""
        engine = self.engine
        state = engine.state
        retrial = engine.config.retrial
        state.customers_reneged += 1
        state.recently_balked.append(BalkedCustomer(replace(customer), time, "renege"))

        if retrial is not None:
            customer.next_retry_time = time + engine.variates.exponential(retrial.avg_retrial_delay)
            customer.is_retrial = True
            state.place(customer.customer_id, (Holder.ORBIT, None))
            engine.emit(EventType.ORBIT_ENTRY, customer.customer_id, time)
            return

        state.customers_impatient += 1
        customer.balk_time = time
        engine.emit(EventType.RENEGE, customer.customer_id, time)
        state.arena.discard(customer.customer_id)
        logger.debug(
            "Customer %s reneged at t=%.2f after %.2f min",
            customer.customer_id, time, time - customer.arrival_time,
        )
