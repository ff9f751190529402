"""
Staffing controller: keeps the headcount at the scheduled target with
graceful attrition (servers are never evicted mid-service).
"""

import logging
from typing import List

import config
from queue_node.entities import QueueModel, Server, ServerState, SkillType

logger = logging.getLogger(__name__)

# Skill sets handed out by server id modulo 4
SKILL_ROTATION = (
    [SkillType.SALES, SkillType.GENERAL],
    [SkillType.TECH, SkillType.GENERAL],
    [SkillType.SUPPORT, SkillType.GENERAL],
    [SkillType.GENERAL, SkillType.SALES, SkillType.SUPPORT, SkillType.TECH],
)


class StaffingController:
    """Hires and retires servers for one engine."""

    def __init__(self, engine):
        self.engine = engine

    def target_count(self, time: float) -> int:
        """Scheduled headcount at a simulation time.

        Args:
            time: Simulation time in minutes

        Returns:
            Target number of servers
        """
        cfg = self.engine.config
        if cfg.model == QueueModel.MM1:
            return 1
        if cfg.model == QueueModel.MMINF:
            return config.INFINITE_SERVER_CAP
        if cfg.schedule is None:
            return cfg.server_count
        count = cfg.schedule.server_schedule[self.engine.hour_index(time)]
        return count or cfg.server_count

    def initial_servers(self) -> List[Server]:
        if self.engine.config.model == QueueModel.MMINF:
            return []
        return [self.create_server(i, 0.0) for i in range(self.target_count(0.0))]

    def create_server(self, server_id: int, now: float) -> Server:
        """Build one idle server with the configured mix and skills.

        Args:
            server_id: Id of the new server
            now: Hire time

        Returns:
            New Server
        """
        cfg = self.engine.config
        variates = self.engine.variates

        efficiency = 1.0
        type_label = "Normal"
        if cfg.efficiency_mix is not None:
            if variates.bernoulli(cfg.efficiency_mix.seniority_ratio):
                efficiency, type_label = config.SENIOR_EFFICIENCY, "Senior"
            else:
                efficiency, type_label = config.JUNIOR_EFFICIENCY, "Junior"

        skills = [SkillType.GENERAL]
        if cfg.skill_routing is not None:
            skills = list(SKILL_ROTATION[server_id % len(SKILL_ROTATION)])

        next_breakdown_time = None
        if cfg.breakdowns is not None:
            next_breakdown_time = now + variates.exponential(cfg.breakdowns.mtbf)

        return Server(
            server_id=server_id,
            start_time=now,
            efficiency=efficiency,
            type_label=type_label,
            skills=skills,
            next_breakdown_time=next_breakdown_time,
        )

    def adjust(self, now: float):
        """Hire or retire servers to match the target headcount.

        Surplus servers are picked idle-first, then by descending id.
        Idle servers with an empty line leave at once; the others are
        marked and leave once idle and empty.

        Args:
            now: Current simulation time
        """
        engine = self.engine
        state = engine.state
        if engine.config.model == QueueModel.MMINF:
            return

        for server in [s for s in state.servers if s.should_remove and s.is_idle_and_empty]:
            state.servers.remove(server)
            logger.debug("Marked server %s left at t=%.2f", server.server_id, now)

        target = self.target_count(now)
        active = state.active_servers()

        if len(active) < target:
            next_id = state.next_server_id()
            for offset in range(target - len(active)):
                state.servers.append(self.create_server(next_id + offset, now))
            logger.debug("Hired %d server(s) at t=%.2f", target - len(active), now)

        elif len(active) > target:
            candidates = sorted(
                active,
                key=lambda s: (0 if s.state == ServerState.IDLE else 1, -s.server_id),
            )
            for server in candidates[:len(active) - target]:
                if server.is_idle_and_empty:
                    state.servers.remove(server)
                else:
                    server.should_remove = True
            logger.debug("Retiring %d server(s) at t=%.2f", len(active) - target, now)
