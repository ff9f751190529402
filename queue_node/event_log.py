"""
Event logging utilities: per-tick animation events and the append-only
log of completed customers, exportable as a DataFrame or CSV.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Union

import pandas as pd

import config


class EventType(str, Enum):
    VIP_ARRIVAL = "VIP_ARRIVAL"
    RENEGE = "RENEGE"
    BALK = "BALK"
    ORBIT_ENTRY = "ORBIT_ENTRY"
    ORBIT_RETRY = "ORBIT_RETRY"
    BREAKDOWN = "BREAKDOWN"
    REPAIR = "REPAIR"


@dataclass(frozen=True)
class SimulationEvent:
    """A transient event emitted during one tick (animation trigger)."""
    event_id: int
    event_type: EventType
    entity_id: int  # customer id, or server id for BREAKDOWN / REPAIR
    time: float


@dataclass(frozen=True)
class CompletedCustomer:
    """One row of the completed-customer export."""
    customer_id: int
    arrival_time: float
    start_time: float
    finish_time: float
    wait_time: float
    service_time: float
    server_id: int
    customer_type: str  # "VIP", "Impatient", "Standard"
    required_skill: str
    estimated_wait_time: float
    workload_items: int = 1


class CompletedCustomerLog:
    """Append-only store of completed customers."""

    def __init__(self):
        self.entries: List[CompletedCustomer] = []

    def record(self, entry: CompletedCustomer):
        """Append a completed customer.

        Args:
            entry: Row to store
        """
        self.entries.append(entry)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[CompletedCustomer]:
        return iter(self.entries)

    def get_dataframe(self) -> pd.DataFrame:
        """Return the log as a pandas DataFrame."""
        if not self.entries:
            return pd.DataFrame(columns=config.COMPLETED_LOG_COLUMNS)

        return pd.DataFrame([asdict(e) for e in self.entries], columns=config.COMPLETED_LOG_COLUMNS)

    def get_since(self, timestamp: float) -> List[CompletedCustomer]:
        """Get all customers that finished after a given time.

        Args:
            timestamp: Filter rows finishing after this time

        Returns:
            List of rows
        """
        return [e for e in self.entries if e.finish_time > timestamp]

    def save_csv(self, output_dir: Union[str, Path] = config.LOG_DIR, run_id: str = "default") -> str:
        """Write the log to CSV.

        Args:
            output_dir: Directory to store the CSV
            run_id: Identifier used in the filename

        Returns:
            Path to the written file
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        csv_path = output_dir / f"customers_{run_id}.csv"
        self.get_dataframe().to_csv(csv_path, index=False)
        return str(csv_path)


class EventCounter:
    """Running totals of emitted events, by type."""

    def __init__(self):
        self.counts = {event_type: 0 for event_type in EventType}
        self.last_time: Optional[float] = None

    def observe(self, events: List[SimulationEvent]):
        for event in events:
            self.counts[event.event_type] += 1
            self.last_time = event.time

    def as_dict(self) -> dict:
        return {event_type.value: count for event_type, count in self.counts.items()}
