"""
Arrival subsystem: schedules the next arrival and decides, per arriving
unit, whether it is admitted, balks, is blocked or goes to orbit.
"""

import logging
import math
from dataclasses import replace
from typing import Optional

from queue_node.entities import (
    BalkedCustomer,
    Customer,
    DistributionType,
    QueueModel,
    QueueTopology,
    SkillType,
)
from queue_node.event_log import EventType
from queue_node.state import Holder

logger = logging.getLogger(__name__)

# Order in which the skill ratios are rolled; the remainder is GENERAL
SKILL_ROLL_ORDER = (SkillType.SALES, SkillType.TECH, SkillType.SUPPORT)


class ArrivalSubsystem:
    """Arrival process of one engine."""

    def __init__(self, engine):
        self.engine = engine
        self.next_arrival_time = 0.0
        self.next_customer_id = 0

    def reset(self):
        self.next_arrival_time = 0.0
        self.next_customer_id = 0
        self.schedule_next(0.0)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def current_lambda(self, time: float) -> float:
        """Arrival rate (per hour) in effect at a simulation time."""
        cfg = self.engine.config
        if cfg.schedule is None:
            return cfg.arrival_rate
        rate = cfg.schedule.arrival_schedule[self.engine.hour_index(time)]
        return rate or cfg.arrival_rate

    def schedule_next(self, now: float):
        """Set next_arrival_time.

        Infinite-population arrivals advance from the previous arrival.
        Finite-population arrivals are redrawn from `now` with rate
        (N - n)·λ, always Exponential.

        Args:
            now: Time the schedule is computed at
        """
        engine = self.engine
        cfg = engine.config

        if cfg.is_trace_driven:
            self.next_arrival_time = engine.trace.next_arrival_time()
            return

        if cfg.model == QueueModel.MMS_N_POP:
            in_system = engine.state.occupancy()
            effective_rate = (cfg.population_size - in_system) * cfg.arrival_rate
            if in_system >= cfg.population_size or effective_rate <= 0:
                self.next_arrival_time = math.inf
                return
            self.next_arrival_time = now + engine.variates.exponential(60.0 / effective_rate)
            return

        rate = self.current_lambda(now)
        if rate <= 0:
            self.next_arrival_time = math.inf
            return
        self.next_arrival_time += engine.variates.sample(cfg.arrival.kind, 60.0 / rate, cfg.arrival.k)

    def process(self, new_time: float):
        """Admit every arrival due up to new_time.

        Args:
            new_time: End of the current tick
        """
        engine = self.engine
        cfg = engine.config
        if engine.state.is_closed:
            return
        while self.next_arrival_time <= new_time:
            arrival_time = self.next_arrival_time
            if not cfg.is_trace_driven and engine.clock_hour(arrival_time) >= cfg.close_hour:
                engine.state.is_closed = True
                break

            self.handle_arrival(arrival_time)

            if cfg.is_trace_driven:
                engine.trace.advance()
            self.schedule_next(arrival_time)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def handle_arrival(self, arrival_time: float):
        """One arrival event: a single unit or a bulk group.

        With a finite population the group is cut to the callers still
        outside the system.
        """
        engine = self.engine
        cfg = engine.config
        bulk = cfg.bulk_arrivals
        group_size = 1
        if bulk is not None:
            group_size = engine.variates.integer(bulk.min_group_size, bulk.max_group_size)
        if cfg.model == QueueModel.MMS_N_POP:
            group_size = min(group_size, cfg.population_size - engine.state.occupancy())
        for _ in range(group_size):
            self.admit(arrival_time)

    def balk_line_length(self) -> int:
        """Line an arrival looks at before deciding to balk."""
        state = self.engine.state
        if self.engine.config.topology == QueueTopology.DEDICATED:
            lines = [len(s.queue) for s in state.active_servers()]
            return min(lines) if lines else 0
        return len(state.queue)

    def admit(self, arrival_time: float, existing: Optional[Customer] = None) -> Optional[Customer]:
        """Process one arriving unit (fresh, or re-entering from orbit).

        Args:
            arrival_time: Time of the attempt
            existing: Customer returning from orbit, already released

        Returns:
            The admitted customer, or None when rejected
        """
        engine = self.engine
        cfg = engine.config
        state = engine.state
        state.customers_arrivals += 1

        blocked = cfg.model == QueueModel.MMSK and state.occupancy() >= cfg.capacity
        balked = False
        if not blocked and cfg.impatience is not None and cfg.model != QueueModel.MMINF:
            balked = self.balk_line_length() >= cfg.impatience.balk_threshold

        customer = existing if existing is not None else self.create_customer(arrival_time)

        if blocked or balked:
            reason = "block" if blocked else "balk"
            if blocked:
                state.customers_blocked += 1
            else:
                state.customers_balked += 1
            self.reject(customer, arrival_time, reason, fresh=existing is None)
            return None

        if customer.is_vip:
            engine.emit(EventType.VIP_ARRIVAL, customer.customer_id, arrival_time)

        if cfg.model == QueueModel.MMINF:
            engine.routing.serve_immediately(customer, arrival_time)
        else:
            engine.routing.route(customer)
        return customer

    def reject(self, customer: Customer, time: float, reason: str, fresh: bool = True):
        """Send a blocked/balked customer to orbit, or count it as lost."""
        engine = self.engine
        state = engine.state
        retrial = engine.config.retrial

        if retrial is not None:
            customer.next_retry_time = time + engine.variates.exponential(retrial.avg_retrial_delay)
            customer.is_retrial = True
            state.place(customer.customer_id, (Holder.ORBIT, None))
            engine.emit(EventType.ORBIT_ENTRY, customer.customer_id, time)
            if fresh:
                state.recently_balked.append(BalkedCustomer(replace(customer), time, reason))
            logger.debug(
                "Customer %s %sed at t=%.2f, retry at t=%.2f",
                customer.customer_id, reason, time, customer.next_retry_time,
            )
            return

        state.customers_impatient += 1
        customer.balk_time = time
        state.recently_balked.append(BalkedCustomer(replace(customer), time, reason))
        engine.emit(EventType.BALK, customer.customer_id, time)
        state.arena.discard(customer.customer_id)
        logger.debug("Customer %s lost (%s) at t=%.2f", customer.customer_id, reason, time)

    def create_customer(self, arrival_time: float) -> Customer:
        """Build and register a fresh customer.

        Args:
            arrival_time: Time of arrival

        Returns:
            Customer registered in the arena but not yet owned
        """
        engine = self.engine
        cfg = engine.config
        variates = engine.variates

        workload_items = 1
        if cfg.workload is not None:
            workload_items = variates.integer(cfg.workload.min_items, cfg.workload.max_items)

        trace_service = None
        if cfg.service.kind == DistributionType.TRACE:
            trace_service = engine.trace.current_service_time()
        if trace_service is not None:
            service_time = trace_service
        else:
            service_time = sum(
                variates.sample(cfg.service.kind, cfg.avg_service_time, cfg.service.k)
                for _ in range(workload_items)
            )

        priority = 1 if variates.bernoulli(cfg.vip_probability) else 0

        patience_time = None
        if cfg.impatience is not None and cfg.model != QueueModel.MMINF:
            patience_time = variates.exponential(cfg.impatience.avg_patience_time)

        required_skill = SkillType.GENERAL
        if cfg.skill_routing is not None:
            roll = variates.random()
            threshold = 0.0
            for skill in SKILL_ROLL_ORDER:
                threshold += cfg.skill_routing.skill_ratios.get(skill, 0.0)
                if roll < threshold:
                    required_skill = skill
                    break

        customer = Customer(
            customer_id=self.next_customer_id,
            arrival_time=arrival_time,
            service_time=service_time,
            priority=priority,
            required_skill=required_skill,
            patience_time=patience_time,
            workload_items=workload_items,
        )
        self.next_customer_id += 1
        engine.state.arena.add(customer)
        return customer
