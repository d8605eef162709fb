"""Billing load test scenarios.

Stateful SequentialTaskSet journeys over the bill lifecycle: a full
open-add-close journey, a journey that replays line item ids, and a
read-heavy browsing user.
"""

import random
import time

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import bill_data, line_item_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import BillState

ITEM_SETTLE_TIMEOUT = 5.0


class _BillJourney(SequentialTaskSet):
    def on_start(self):
        self.state = BillState()

    def _open_bill(self, with_id=False):
        with self.client.post(
            "/bills",
            json=bill_data(with_id=with_id),
            catch_response=True,
            name="POST /bills",
        ) as resp:
            if resp.status_code == 201:
                self.state.bill_id = resp.json()["bill_id"]
            else:
                resp.failure(f"Create bill failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    def _add_item(self, line_item_id=None):
        payload = line_item_data(line_item_id)
        with self.client.post(
            f"/bills/{self.state.bill_id}/items",
            json=payload,
            catch_response=True,
            name="POST /bills/{id}/items",
        ) as resp:
            if resp.status_code == 202:
                item_id = resp.json()["line_item_id"]
                if item_id not in self.state.line_item_ids:
                    self.state.line_item_ids.append(item_id)
                    self.state.expected_total += payload["amount"]
            else:
                resp.failure(f"Add line item failed: {resp.status_code} — {extract_error_detail(resp)}")

    def _wait_for_items(self):
        """Items are applied asynchronously; poll before closing so none race the close."""
        deadline = time.monotonic() + ITEM_SETTLE_TIMEOUT
        while time.monotonic() < deadline:
            resp = self.client.get(f"/bills/{self.state.bill_id}", name="GET /bills/{id}")
            if resp.status_code == 200 and len(resp.json()["line_items"]) >= len(self.state.line_item_ids):
                return
            time.sleep(0.05)

    def _close_bill(self):
        with self.client.post(
            f"/bills/{self.state.bill_id}/close",
            catch_response=True,
            name="POST /bills/{id}/close",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Close bill failed: {resp.status_code} — {extract_error_detail(resp)}")
                return
            bill = resp.json()["bill"]
            self.state.current_status = bill["status"]
            if abs(bill["total_amount"] - self.state.expected_total) > 0.01:
                resp.failure(f"Total mismatch: got {bill['total_amount']}, expected {self.state.expected_total:.2f}")


class BillLifecycleJourney(_BillJourney):
    """Open -> Add 1-5 Items -> Close.

    Generates events: BillOpened, LineItemAdded (xN), BillClosed.
    """

    @task
    def open_bill(self):
        self._open_bill()

    @task
    def add_items(self):
        for _ in range(random.randint(1, 5)):
            self._add_item()

    @task
    def close_bill(self):
        self._wait_for_items()
        self._close_bill()

    @task
    def done(self):
        self.interrupt()


class DuplicateLineItemJourney(_BillJourney):
    """Open -> Add Items -> Resend the same ids -> Close.

    Resent ids must not change the total.
    """

    @task
    def open_bill(self):
        self._open_bill(with_id=True)

    @task
    def add_items(self):
        for index in range(3):
            self._add_item(line_item_id=f"{self.state.bill_id}-li-{index}")

    @task
    def resend_items(self):
        for line_item_id in list(self.state.line_item_ids):
            self._add_item(line_item_id=line_item_id)

    @task
    def close_bill(self):
        self._wait_for_items()
        self._close_bill()

    @task
    def done(self):
        self.interrupt()


class BillBrowsingJourney(SequentialTaskSet):
    """List bills by status and currency."""

    @task
    def list_open(self):
        self.client.get("/bills", params={"status": "OPEN", "limit": 20}, name="GET /bills?status=OPEN")

    @task
    def list_closed(self):
        self.client.get("/bills", params={"status": "CLOSED", "limit": 20}, name="GET /bills?status=CLOSED")

    @task
    def list_by_currency(self):
        self.client.get("/bills", params={"currency": "USD", "limit": 20}, name="GET /bills?currency=USD")

    @task
    def done(self):
        self.interrupt()


class BillingUser(HttpUser):
    """Locust user simulating Billing API interactions.

    Weighted distribution:
    - 60% Full bill lifecycle
    - 20% Duplicate line item ids
    - 20% Browsing
    """

    wait_time = between(0.5, 2.0)
    tasks = {
        BillLifecycleJourney: 6,
        DuplicateLineItemJourney: 2,
        BillBrowsingJourney: 2,
    }
