"""
Reliability subsystem: server breakdowns with preemptive-resume repairs,
and the queue-length driven panic flag.
"""

import logging

from queue_node.entities import Server, ServerState
from queue_node.event_log import EventType

logger = logging.getLogger(__name__)


class ReliabilitySubsystem:
    """Breakdowns, repairs and panic for one engine."""

    def __init__(self, engine):
        self.engine = engine

    def update_panic(self):
        """Panic while the total queued count is at or above the threshold."""
        state = self.engine.state
        panic = self.engine.config.panic
        state.is_panic = panic is not None and state.total_queued() >= panic.threshold

    def handle_breakdowns(self, new_time: float):
        """Fail servers whose failure time elapsed and finish due repairs.

        Repairs in progress complete even when breakdowns have since been
        switched off.

        Args:
            new_time: End of the current tick
        """
        engine = self.engine
        breakdowns = engine.config.breakdowns

        for server in list(engine.state.servers):
            if server.is_infinite_slot:
                continue

            if server.state == ServerState.OFFLINE:
                if server.repair_time is not None and new_time >= server.repair_time:
                    self.repair(server, new_time)
                continue

            if breakdowns is None:
                continue
            if server.next_breakdown_time is None:
                server.next_breakdown_time = new_time + engine.variates.exponential(breakdowns.mtbf)
                continue
            if new_time >= server.next_breakdown_time:
                self.break_down(server, new_time)

    def break_down(self, server: Server, new_time: float):
        """Take a server offline; a batch in service is paused, not lost."""
        engine = self.engine
        breakdowns = engine.config.breakdowns

        repair_duration = engine.variates.exponential(breakdowns.mttr)
        server.repair_time = new_time + repair_duration
        if server.state == ServerState.BUSY:
            for customer in engine.state.customers(server.active_batch):
                customer.finish_time += repair_duration

        server.set_state(ServerState.OFFLINE, new_time)
        server.next_breakdown_time = server.repair_time + engine.variates.exponential(breakdowns.mtbf)
        engine.emit(EventType.BREAKDOWN, server.server_id, new_time)
        logger.debug(
            "Server %s broke down at t=%.2f, repair takes %.2f min",
            server.server_id, new_time, repair_duration,
        )

    def repair(self, server: Server, new_time: float):
        resumed = ServerState.BUSY if server.active_batch else ServerState.IDLE
        server.set_state(resumed, new_time)
        server.repair_time = None
        self.engine.emit(EventType.REPAIR, server.server_id, new_time)
        logger.debug("Server %s repaired at t=%.2f", server.server_id, new_time)
