'''
Custom time requests: a student asks for a time that is not listed.
'''
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status

from ..common.config import settings
from ..common.exceptions import StoreError
from ..common.logger import log
from ..core.time_intervals import interval_duration, local_now
from ..database import models as db_models
from ..database.db_enums import BookingRequestStatusEnum
from ..database.store import BookingStore
from ..models import booking_request as request_models
from .security import CurrentUser

MAX_REQUEST_MINUTES = 4 * 60


class BookingRequestService:
    def __init__(self, store: Annotated[BookingStore, Depends(BookingStore)]):
        self.store = store

    async def _get_request_or_404(self, request_id: UUID) -> db_models.BookingRequests:
        request = await self.store.get_booking_request(request_id)
        if not request:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found.")
        return request

    async def create_request_for_api(
        self,
        data: request_models.BookingRequestCreate,
        current_user: CurrentUser,
        now: Optional[datetime] = None,
    ) -> request_models.BookingRequestRead:
        log.info(f"User {current_user.id} requesting a custom time with mentor {data.mentor_id}")
        mentor = await self.store.get_mentor(data.mentor_id)
        if not mentor:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mentor not found.")
        if mentor.id == current_user.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot request a session with yourself.")

        today = local_now(mentor.timezone or settings.DEFAULT_MENTOR_TIMEZONE, now).date()
        if data.requested_date < today:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot request sessions in the past.")

        minutes = interval_duration(data.requested_start_time, data.requested_end_time)
        if minutes < settings.MIN_SLOT_MINUTES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Session must be at least {settings.MIN_SLOT_MINUTES} minutes."
            )
        if minutes > MAX_REQUEST_MINUTES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session cannot exceed 4 hours.")

        try:
            request = await self.store.insert_booking_request(db_models.BookingRequests(
                mentor_id=mentor.id,
                mentee_id=current_user.id,
                requested_date=data.requested_date,
                requested_start_time=data.requested_start_time,
                requested_end_time=data.requested_end_time,
                message=data.message,
                status=BookingRequestStatusEnum.PENDING.value,
            ))
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        log.info(f"Booking request {request.id} created for mentor {mentor.id}")
        return request_models.BookingRequestRead.model_validate(request)

    async def list_requests_for_api(self, current_user: CurrentUser, as_mentor: bool = False) -> list[request_models.BookingRequestRead]:
        if as_mentor:
            requests = await self.store.list_booking_requests_for_mentor(current_user.id)
        else:
            requests = await self.store.list_booking_requests_for_mentee(current_user.id)
        return [request_models.BookingRequestRead.model_validate(r) for r in requests]

    async def respond_to_request_for_api(
        self,
        request_id: UUID,
        data: request_models.BookingRequestResponse,
        current_user: CurrentUser,
    ) -> request_models.BookingRequestRead:
        """The owning mentor approves or declines a pending request."""
        request = await self._get_request_or_404(request_id)
        if request.mentor_id != current_user.id:
            log.warning(f"SECURITY: User {current_user.id} tried to answer request {request_id} for mentor {request.mentor_id}.")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
        if request.status != BookingRequestStatusEnum.PENDING.value:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This request has already been answered.")
        if data.status == BookingRequestStatusEnum.PENDING:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Answer with approved or declined.")
        try:
            request = await self.store.update_booking_request(
                request, status=data.status.value, mentor_response=data.mentor_response
            )
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        log.info(f"Mentor {current_user.id} {data.status.value} request {request_id}")
        return request_models.BookingRequestRead.model_validate(request)

    async def delete_request_for_api(self, request_id: UUID, current_user: CurrentUser) -> None:
        """The requesting student withdraws a request that is still pending."""
        request = await self._get_request_or_404(request_id)
        if request.mentee_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
        if request.status != BookingRequestStatusEnum.PENDING.value:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Can only delete pending requests.")
        try:
            await self.store.delete_booking_request(request_id)
        except StoreError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        log.info(f"User {current_user.id} deleted request {request_id}")
