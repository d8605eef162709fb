"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state — no cross-user sharing.
State tracks the bill a journey works on so follow-up requests can
reference it and the expected total can be checked at close.
"""

from dataclasses import dataclass, field


@dataclass
class BillState:
    """Tracks state for a single simulated bill lifecycle."""

    bill_id: str | None = None
    line_item_ids: list[str] = field(default_factory=list)
    expected_total: float = 0.0
    current_status: str = "OPEN"
