"""
Routing and service assignment: placing admitted customers in a line,
pairing idle servers with waiting customers (including batches) and
jockeying between dedicated lines.
"""

import logging
from typing import List, Optional

from queue_node.entities import (
    Customer,
    QueueModel,
    QueueTopology,
    Server,
    ServerSelectionStrategy,
    ServerState,
    SkillType,
)
from queue_node.state import Holder
from queue_node.theory import calculate_ewt

logger = logging.getLogger(__name__)


class RoutingSubsystem:
    """Line selection and server assignment for one engine."""

    def __init__(self, engine):
        self.engine = engine

    # ------------------------------------------------------------------
    # Placement of admitted customers
    # ------------------------------------------------------------------

    def route(self, customer: Customer):
        """Put an admitted customer in the common queue or a dedicated line.

        Args:
            customer: Registered, unowned customer
        """
        engine = self.engine
        cfg = engine.config
        state = engine.state

        server = None
        if cfg.topology == QueueTopology.DEDICATED:
            server = self.pick_dedicated_line(customer)

        if server is not None:
            if server.state == ServerState.IDLE and not server.queue and not server.active_batch:
                customer.estimated_wait_time = 0.0
            else:
                customer.estimated_wait_time = calculate_ewt(
                    len(server.queue), 1, cfg.avg_service_time, server.efficiency
                )
            state.place(customer.customer_id, (Holder.DEDICATED, server.server_id))
        else:
            active = state.active_servers()
            any_idle = any(s.state == ServerState.IDLE for s in active)
            if any_idle and not state.queue:
                customer.estimated_wait_time = 0.0
            else:
                customer.estimated_wait_time = calculate_ewt(
                    len(state.queue), len(active), cfg.avg_service_time, cfg.average_efficiency
                )
            state.place(customer.customer_id, (Holder.QUEUE, None))
            state.sort_queue()

        state.max_queue_length = max(state.max_queue_length, state.longest_line())

    def pick_dedicated_line(self, customer: Customer) -> Optional[Server]:
        """Join-shortest-queue among servers able to serve the customer.

        Eligibility falls back from skill match to GENERAL-skilled servers
        and then to any server not marked for removal.
        """
        state = self.engine.state
        active = state.active_servers()
        candidates = active
        if self.engine.config.skill_routing is not None:
            candidates = [s for s in active if s.can_serve(customer.required_skill)]
            if not candidates:
                candidates = [s for s in active if s.can_serve(SkillType.GENERAL)]
            if not candidates:
                candidates = active
        if not candidates:
            return None
        return min(candidates, key=lambda s: len(s.queue) + (1 if s.active_batch else 0))

    def serve_immediately(self, customer: Customer, arrival_time: float):
        """M/M/inf: open a fresh server slot and start service at once."""
        state = self.engine.state
        server = Server(
            server_id=state.next_server_id(),
            start_time=arrival_time,
            state=ServerState.BUSY,
            skills=[customer.required_skill],
            is_infinite_slot=True,
        )
        state.servers.append(server)
        customer.start_time = arrival_time
        customer.finish_time = arrival_time + customer.service_time
        customer.estimated_wait_time = 0.0
        state.place(customer.customer_id, (Holder.BATCH, server.server_id))
        self.engine.recorder.record_wait(0.0)

    # ------------------------------------------------------------------
    # Service assignment
    # ------------------------------------------------------------------

    def assign_servers(self):
        """Start service on every idle server that has compatible work."""
        engine = self.engine
        cfg = engine.config
        state = engine.state
        if cfg.model == QueueModel.MMINF:
            return

        if cfg.topology == QueueTopology.DEDICATED:
            for server in list(state.servers):
                if server.state != ServerState.IDLE or server.active_batch:
                    continue
                if server.queue:
                    owner = (Holder.DEDICATED, server.server_id)
                    ids = server.queue[:cfg.max_batch_size]
                    self.start_batch(server, [state.take(cid, owner) for cid in ids])
                elif state.queue and not server.should_remove:
                    # Overflow: customers parked in the common queue while unstaffed
                    batch = self.extract_compatible(server)
                    if batch:
                        self.start_batch(server, batch)
            return

        idle = [s for s in state.servers if s.state == ServerState.IDLE and not s.should_remove]
        for server in self.order_idle_servers(idle):
            if not state.queue:
                break
            batch = self.extract_compatible(server)
            if batch:
                self.start_batch(server, batch)

    def order_idle_servers(self, idle: List[Server]) -> List[Server]:
        if self.engine.config.server_selection == ServerSelectionStrategy.EFFICIENCY:
            return sorted(idle, key=lambda s: -s.efficiency)
        return self.engine.variates.shuffled(idle)

    def extract_compatible(self, server: Server) -> List[Customer]:
        """Remove up to max_batch_size customers the server can serve.

        Scans the common queue in order: skill first-fit when skill
        routing is on, plain FIFO otherwise.
        """
        engine = self.engine
        state = engine.state
        limit = engine.config.max_batch_size
        check_skill = engine.config.skill_routing is not None

        chosen = []
        for cid in state.queue:
            if len(chosen) >= limit:
                break
            if not check_skill or server.can_serve(state.arena[cid].required_skill):
                chosen.append(cid)
        return [state.take(cid, (Holder.QUEUE, None)) for cid in chosen]

    def start_batch(self, server: Server, batch: List[Customer]):
        """Start one shared service for a batch of released customers.

        The duration is the first member's service time divided by the
        server's efficiency (and the panic multiplier while panicking).
        Every member shares start and finish; waits are recorded now.
        """
        if not batch:
            return
        engine = self.engine
        state = engine.state
        cfg = engine.config

        efficiency = server.efficiency
        if state.is_panic and cfg.panic is not None:
            efficiency *= cfg.panic.efficiency_multiplier
        base = batch[0].service_time
        duration = base / efficiency if efficiency > 0 else base

        start = max(state.current_time, max(c.arrival_time for c in batch))
        finish = start + duration
        for customer in batch:
            customer.start_time = start
            customer.finish_time = finish
            engine.recorder.record_wait(start - customer.arrival_time)
            state.place(customer.customer_id, (Holder.BATCH, server.server_id))

        server.set_state(ServerState.BUSY, start)

    # ------------------------------------------------------------------
    # Jockeying
    # ------------------------------------------------------------------

    def jockey(self):
        """Move the last customer of the longest line to the shortest one.

        Happens when the lines differ by two or more; skipped (reverted)
        when skill routing is on and the receiver lacks the skill.
        """
        engine = self.engine
        state = engine.state
        candidates = state.active_servers()
        if len(candidates) < 2:
            return

        longest = max(candidates, key=lambda s: len(s.queue))
        shortest = min(candidates, key=lambda s: len(s.queue))
        if longest is shortest or len(longest.queue) - len(shortest.queue) < 2:
            return

        source = (Holder.DEDICATED, longest.server_id)
        switcher = state.take(longest.queue[-1], source)
        if engine.config.skill_routing is not None and not shortest.can_serve(switcher.required_skill):
            state.place(switcher.customer_id, source)
            return

        state.place(switcher.customer_id, (Holder.DEDICATED, shortest.server_id))
        logger.debug(
            "Customer %s jockeyed from server %s to server %s",
            switcher.customer_id, longest.server_id, shortest.server_id,
        )
