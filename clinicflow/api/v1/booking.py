from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clinicflow.booking.schemas import BookingApproval, BookingRequestRecord, PendingBookingRequest
from clinicflow.booking.workflow import BookingRequestNotFound, BookingWorkflow, InvalidBookingTransition
from clinicflow.config import get_settings

from .schemas import BookingConfirmRequest, BookingConfirmResponse, BookingReviewRequest


router = APIRouter(prefix="/api/v1/booking", tags=["booking"])


def get_booking_workflow() -> BookingWorkflow:
    from clinicflow.core.runtime import build_booking_workflow
    from clinicflow.db import async_session

    return build_booking_workflow(async_session, get_settings())


@router.get("/requests", response_model=list[PendingBookingRequest])
async def list_pending_requests(
    tenant_id: UUID | None = Query(default=None),
    workflow: BookingWorkflow = Depends(get_booking_workflow),
) -> list[PendingBookingRequest]:
    """Pending requests, oldest first."""
    return await workflow.list_pending(str(tenant_id) if tenant_id else None)


@router.get("/requests/{booking_id}", response_model=BookingRequestRecord)
async def get_request(
    booking_id: UUID,
    workflow: BookingWorkflow = Depends(get_booking_workflow),
) -> BookingRequestRecord:
    try:
        return await workflow.get(str(booking_id))
    except BookingRequestNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking request not found")


@router.patch("/requests/{booking_id}/approve", response_model=BookingRequestRecord)
async def review_request(
    booking_id: UUID,
    body: BookingReviewRequest,
    workflow: BookingWorkflow = Depends(get_booking_workflow),
) -> BookingRequestRecord:
    try:
        if body.action == "reject":
            return await workflow.reject(str(booking_id), body.rejection_reason or "")
        return await workflow.approve(
            str(booking_id),
            BookingApproval(
                confirmed_date=body.confirmed_date if body.action == "approve" else None,
                alternative_dates=body.alternative_dates,
                human_response=body.human_response,
            ),
        )
    except BookingRequestNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking request not found")
    except InvalidBookingTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/requests/{booking_id}/confirm", response_model=BookingConfirmResponse)
async def confirm_request(
    booking_id: UUID,
    body: BookingConfirmRequest,
    workflow: BookingWorkflow = Depends(get_booking_workflow),
) -> BookingConfirmResponse:
    try:
        current = await workflow.get(str(booking_id))
    except BookingRequestNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking request not found")

    confirmed = await workflow.confirm_to_crm(current.id, body.crm_booking_id)
    if not confirmed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Booking request is already {current.status.value}",
        )
    return BookingConfirmResponse(id=current.id, confirmed=True)
