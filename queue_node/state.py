"""
Simulation state: the customer arena and every live collection.

Queues, orbit and batches hold customer ids. The arena records which
collection owns each id so a customer can never sit in two places.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, Iterator, List, Optional, Tuple

import config
from queue_node.entities import BalkedCustomer, Customer, DepartedCustomer, Server
from queue_node.event_log import CompletedCustomerLog, SimulationEvent
from queue_node.statistics import Snapshot, StatisticalAccumulator


class OwnershipError(RuntimeError):
    """A customer was claimed by a second collection."""


class Holder(str, Enum):
    QUEUE = "queue"  # common queue
    DEDICATED = "dedicated"  # a server's own line
    BATCH = "batch"  # a server's active batch
    ORBIT = "orbit"


Owner = Tuple[Holder, Optional[int]]  # (collection, server id)


class CustomerArena:
    """Customers keyed by id, with the single collection owning each."""

    def __init__(self):
        self._customers: Dict[int, Customer] = {}
        self._owners: Dict[int, Owner] = {}

    def add(self, customer: Customer):
        if customer.customer_id in self._customers:
            raise OwnershipError(f"customer {customer.customer_id} already registered")
        self._customers[customer.customer_id] = customer

    def __getitem__(self, customer_id: int) -> Customer:
        return self._customers[customer_id]

    def __contains__(self, customer_id: int) -> bool:
        return customer_id in self._customers

    def __len__(self) -> int:
        return len(self._customers)

    def __iter__(self) -> Iterator[Customer]:
        return iter(self._customers.values())

    def owner(self, customer_id: int) -> Optional[Owner]:
        return self._owners.get(customer_id)

    def claim(self, customer_id: int, owner: Owner):
        """Record that owner now holds the customer.

        Raises:
            OwnershipError: if the customer is unknown or already owned
        """
        if customer_id not in self._customers:
            raise OwnershipError(f"customer {customer_id} is not in the arena")
        current = self._owners.get(customer_id)
        if current is not None:
            raise OwnershipError(
                f"customer {customer_id} claimed by {owner} while held by {current}"
            )
        self._owners[customer_id] = owner

    def release(self, customer_id: int, owner: Owner):
        current = self._owners.get(customer_id)
        if current != owner:
            raise OwnershipError(
                f"customer {customer_id} released by {owner} but held by {current}"
            )
        del self._owners[customer_id]

    def discard(self, customer_id: int) -> Customer:
        """Drop a customer that left the system."""
        if customer_id in self._owners:
            raise OwnershipError(
                f"customer {customer_id} discarded while held by {self._owners[customer_id]}"
            )
        return self._customers.pop(customer_id)


@dataclass
class SimulationState:
    """Aggregate mutable state of the node."""
    current_time: float = 0.0
    arena: CustomerArena = field(default_factory=CustomerArena)
    queue: List[int] = field(default_factory=list)
    orbit: List[int] = field(default_factory=list)
    servers: List[Server] = field(default_factory=list)

    # Counters
    customers_arrivals: int = 0
    customers_served: int = 0
    customers_served_within_target: int = 0
    customers_impatient: int = 0  # lost (balk, block or renege without retrial)
    customers_blocked: int = 0
    customers_balked: int = 0
    customers_reneged: int = 0
    customers_retried: int = 0
    total_wait_time: float = 0.0
    total_system_time: float = 0.0
    max_queue_length: int = 0

    # Statistics
    stats_wq: StatisticalAccumulator = field(default_factory=StatisticalAccumulator)
    stats_w: StatisticalAccumulator = field(default_factory=StatisticalAccumulator)
    integral_l: float = 0.0
    history: Deque[Snapshot] = field(
        default_factory=lambda: deque(maxlen=config.MAX_HISTORY_POINTS)
    )

    is_closed: bool = False
    is_panic: bool = False

    # Transient buffers
    events: List[SimulationEvent] = field(default_factory=list)
    recently_departed: List[DepartedCustomer] = field(default_factory=list)
    recently_balked: List[BalkedCustomer] = field(default_factory=list)
    completed: CompletedCustomerLog = field(default_factory=CompletedCustomerLog)

    # ------------------------------------------------------------------
    # Ownership-preserving moves
    # ------------------------------------------------------------------

    def collection(self, owner: Owner) -> List[int]:
        holder, server_id = owner
        if holder == Holder.QUEUE:
            return self.queue
        if holder == Holder.ORBIT:
            return self.orbit
        server = self.server(server_id)
        if server is None:
            raise OwnershipError(f"no server {server_id} for {holder.value}")
        return server.queue if holder == Holder.DEDICATED else server.active_batch

    def place(self, customer_id: int, owner: Owner):
        """Append a customer to the collection named by owner."""
        self.arena.claim(customer_id, owner)
        self.collection(owner).append(customer_id)

    def take(self, customer_id: int, owner: Owner) -> Customer:
        """Remove a customer from the collection named by owner."""
        self.arena.release(customer_id, owner)
        self.collection(owner).remove(customer_id)
        return self.arena[customer_id]

    def take_all(self, owner: Owner) -> List[Customer]:
        ids = list(self.collection(owner))
        return [self.take(customer_id, owner) for customer_id in ids]

    def customers(self, ids: List[int]) -> List[Customer]:
        return [self.arena[customer_id] for customer_id in ids]

    def sort_queue(self):
        """VIP first, then FIFO by arrival time."""
        self.queue.sort(
            key=lambda cid: (-self.arena[cid].priority, self.arena[cid].arrival_time)
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def server(self, server_id: Optional[int]) -> Optional[Server]:
        for server in self.servers:
            if server.server_id == server_id:
                return server
        return None

    def active_servers(self) -> List[Server]:
        """Servers not marked for removal."""
        return [s for s in self.servers if not s.should_remove]

    def total_queued(self) -> int:
        """Customers waiting in the common queue and every dedicated line."""
        return len(self.queue) + sum(len(s.queue) for s in self.servers)

    def occupancy(self) -> int:
        """Customers in the system: queued plus in service (incl. paused)."""
        return self.total_queued() + sum(len(s.active_batch) for s in self.servers)

    def longest_line(self) -> int:
        return max([len(self.queue)] + [len(s.queue) for s in self.servers])

    def next_server_id(self) -> int:
        return max((s.server_id for s in self.servers), default=-1) + 1

    def verify_ownership(self):
        """Cross-check every collection against the arena's owner records.

        Raises:
            OwnershipError: if an id is held twice or its owner disagrees
        """
        holdings: List[Tuple[Owner, List[int]]] = [
            ((Holder.QUEUE, None), self.queue),
            ((Holder.ORBIT, None), self.orbit),
        ]
        for server in self.servers:
            holdings.append(((Holder.DEDICATED, server.server_id), server.queue))
            holdings.append(((Holder.BATCH, server.server_id), server.active_batch))

        seen = set()
        for owner, ids in holdings:
            for customer_id in ids:
                if customer_id in seen:
                    raise OwnershipError(f"customer {customer_id} held by two collections")
                seen.add(customer_id)
                if self.arena.owner(customer_id) != owner:
                    raise OwnershipError(
                        f"customer {customer_id} found in {owner} but owned by "
                        f"{self.arena.owner(customer_id)}"
                    )
