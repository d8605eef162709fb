"""Pydantic request/response schemas for the Billing API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands and actor snapshots.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class CreateBillRequest(BaseModel):
    currency: str
    customer_id: str = ""
    bill_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "currency": "USD",
                }
            ]
        }
    }


class AddLineItemRequest(BaseModel):
    description: str
    amount: float
    line_item_id: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class LineItemResponse(BaseModel):
    id: str
    description: str
    amount: float
    created_at: datetime | None = None


class BillResponse(BaseModel):
    id: str
    customer_id: str
    currency: str
    status: str
    line_items: list[LineItemResponse] = Field(default_factory=list)
    total_amount: float
    created_at: datetime | None = None
    closed_at: datetime | None = None


class CreateBillResponse(BaseModel):
    bill_id: str
    initial_status: str
    confirmation_msg: str


class AddLineItemResponse(BaseModel):
    line_item_id: str
    bill_id: str
    confirmation_msg: str


class CloseBillResponse(BaseModel):
    bill: BillResponse
    confirmation_msg: str


class ListBillsResponse(BaseModel):
    bills: list[BillResponse]
    total_count: int
    limit: int | None = None
    offset: int = 0
