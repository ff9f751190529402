"""
Departure subsystem: completes batches whose shared finish time has
elapsed and records per-customer statistics.
"""

import logging
from dataclasses import replace

from queue_node.entities import Customer, DepartedCustomer, QueueModel, Server, ServerState
from queue_node.event_log import CompletedCustomer
from queue_node.state import Holder

logger = logging.getLogger(__name__)


class DepartureSubsystem:
    """Service completions for one engine."""

    def __init__(self, engine):
        self.engine = engine

    def process(self, new_time: float) -> int:
        """Complete every batch finishing at or before new_time.

        Args:
            new_time: End of the current tick

        Returns:
            Number of customers that departed
        """
        engine = self.engine
        state = engine.state
        departed = 0

        for server in list(state.servers):
            if server.state != ServerState.BUSY or not server.active_batch:
                continue
            finish_time = state.arena[server.active_batch[0]].finish_time
            if finish_time is None or finish_time > new_time:
                continue

            for customer in state.take_all((Holder.BATCH, server.server_id)):
                self.complete(customer, server, new_time)
                departed += 1

            if server.is_infinite_slot:
                state.servers.remove(server)
                continue

            server.set_state(ServerState.IDLE, new_time)
            if server.should_remove and not server.queue:
                state.servers.remove(server)
                logger.debug("Server %s left after finishing its last batch", server.server_id)

        if departed and engine.config.model == QueueModel.MMS_N_POP:
            # Occupancy dropped, so the pooled arrival rate went up
            engine.arrivals.schedule_next(new_time)
        return departed

    def complete(self, customer: Customer, server: Server, new_time: float):
        """Record one served customer and drop it from the arena."""
        engine = self.engine
        state = engine.state

        wait_time = customer.start_time - customer.arrival_time
        system_time = customer.finish_time - customer.arrival_time
        state.customers_served += 1
        engine.recorder.record_system_time(system_time)
        if wait_time <= engine.config.sl_target:
            state.customers_served_within_target += 1

        state.recently_departed.append(DepartedCustomer(replace(customer), server.server_id, new_time))
        state.completed.record(CompletedCustomer(
            customer_id=customer.customer_id,
            arrival_time=customer.arrival_time,
            start_time=customer.start_time,
            finish_time=customer.finish_time,
            wait_time=wait_time,
            service_time=customer.service_time,
            server_id=server.server_id,
            customer_type=customer.customer_type,
            required_skill=customer.required_skill.value,
            estimated_wait_time=customer.estimated_wait_time or 0.0,
            workload_items=customer.workload_items,
        ))
        state.arena.discard(customer.customer_id)
