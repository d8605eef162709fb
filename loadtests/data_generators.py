"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that match the exact field names expected
by the Billing API's Pydantic request schemas.
"""

import random
import uuid

from faker import Faker

fake = Faker()

CURRENCIES = ["USD", "EUR", "GBP", "INR"]


def unique_bill_id() -> str:
    """Generate unique bill IDs like 'BILL-LT-a1b2c3d4'."""
    return f"BILL-LT-{uuid.uuid4().hex[:8]}"


def bill_data(with_id: bool = False) -> dict:
    data = {
        "customer_id": f"cust-{fake.uuid4()[:8]}",
        "currency": random.choice(CURRENCIES),
    }
    if with_id:
        data["bill_id"] = unique_bill_id()
    return data


def line_item_data(line_item_id: str | None = None) -> dict:
    data = {
        "description": fake.catch_phrase()[:1000],
        "amount": round(random.uniform(0.5, 500.0), 2),
    }
    if line_item_id:
        data["line_item_id"] = line_item_id
    return data
