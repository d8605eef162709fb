"""FastAPI routes for the Billing domain.

Requests become actor commands and queries. Commands are fire-and-forget: an
item added to a closed bill is accepted here and dropped by the actor, and the
caller finds out by reading the bill.
"""

from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Query

from billing.actor import get_registry
from billing.actor.errors import (
    BillActorFailed,
    BillActorStopped,
    BillAlreadyExists,
    BillCreationFailed,
    BillNotFound,
)
from billing.api.schemas import (
    AddLineItemRequest,
    AddLineItemResponse,
    BillResponse,
    CloseBillResponse,
    CreateBillRequest,
    CreateBillResponse,
    ListBillsResponse,
)


@asynccontextmanager
async def bill_actors_lifespan(app: FastAPI):
    """Stop running bill actors when the application shuts down."""
    yield
    await get_registry().shutdown()


bill_router = APIRouter(prefix="/bills", tags=["bills"])


@bill_router.post("", status_code=201, response_model=CreateBillResponse)
async def create_bill(body: CreateBillRequest) -> CreateBillResponse:
    """Open a new bill and start its actor."""
    try:
        snapshot = await get_registry().create(
            currency=body.currency,
            customer_id=body.customer_id,
            bill_id=body.bill_id,
        )
    except BillAlreadyExists as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except BillCreationFailed as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return CreateBillResponse(
        bill_id=snapshot.id,
        initial_status=snapshot.status,
        confirmation_msg="Bill created successfully.",
    )


@bill_router.post("/{bill_id}/items", status_code=202, response_model=AddLineItemResponse)
async def add_line_item(bill_id: str, body: AddLineItemRequest) -> AddLineItemResponse:
    """Send a line item to the bill's actor."""
    line_item_id = body.line_item_id or str(uuid4())
    try:
        get_registry().add_line_item(
            bill_id,
            description=body.description,
            amount=body.amount,
            line_item_id=line_item_id,
        )
    except BillNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return AddLineItemResponse(
        line_item_id=line_item_id,
        bill_id=bill_id,
        confirmation_msg="Line item submitted.",
    )


@bill_router.post("/{bill_id}/close", response_model=CloseBillResponse)
async def close_bill(bill_id: str) -> CloseBillResponse:
    """Close the bill and return it once the actor reports it closed."""
    registry = get_registry()
    try:
        registry.close(bill_id)
        snapshot = await registry.wait_closed(bill_id)
    except BillNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except BillActorFailed as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except BillActorStopped as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except TimeoutError as exc:
        raise HTTPException(status_code=504, detail=f"Timed out waiting for bill {bill_id} to close") from exc

    return CloseBillResponse(
        bill=BillResponse(**snapshot.to_dict()),
        confirmation_msg="Bill closed successfully.",
    )


@bill_router.get("/{bill_id}", response_model=BillResponse)
async def get_bill(bill_id: str) -> BillResponse:
    """Current state of a bill."""
    try:
        snapshot = await get_registry().query(bill_id)
    except BillNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return BillResponse(**snapshot.to_dict())


@bill_router.get("", response_model=ListBillsResponse)
async def list_bills(
    status: str | None = None,
    currency: str | None = None,
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
) -> ListBillsResponse:
    """List bills, optionally filtered by status (OPEN or CLOSED) and currency."""
    try:
        bills, total_count = await get_registry().list_bills(
            status=status,
            currency=currency,
            limit=limit,
            offset=offset,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status parameter: {status!r}. Must be 'OPEN', 'CLOSED', or empty",
        ) from exc

    return ListBillsResponse(
        bills=[BillResponse(**snapshot.to_dict()) for snapshot in bills],
        total_count=total_count,
        limit=limit,
        offset=offset,
    )
