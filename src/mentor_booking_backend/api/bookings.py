'''
API endpoints for bookings.
'''
from typing import Annotated, Any, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, status

from ..models import booking as booking_models
from ..services.booking_service import BookingService
from ..services.security import CurrentUser, get_current_user, get_optional_user

class BookingsAPI:
    """
    A class to encapsulate booking creation and the booking lifecycle.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/bookings",
            tags=["Bookings"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.create_booking,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=booking_models.BookingCreated)

        # must stay before /{booking_id}
        self.router.add_api_route(
                "/mine",
                self.list_my_bookings,
                methods=["GET"],
                response_model=List[booking_models.BookingRead])

        self.router.add_api_route(
                "/{booking_id}",
                self.get_booking,
                methods=["GET"],
                response_model=booking_models.BookingRead)

        self.router.add_api_route(
                "/{booking_id}/status",
                self.update_status,
                methods=["PATCH"],
                response_model=booking_models.BookingRead)

        self.router.add_api_route(
                "/{booking_id}/complete",
                self.complete_booking,
                methods=["POST"],
                response_model=booking_models.BookingRead)

    async def create_booking(
        self,
        booking_data: booking_models.BookingCreate,
        current_user: Annotated[Optional[CurrentUser], Depends(get_optional_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        """
        Books a service. Guests may book; a signed-in user is recorded as the booker.
        """
        return await booking_service.create_booking_for_api(booking_data, current_user)

    async def list_my_bookings(
        self,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)],
        as_mentor: bool = False
    ) -> List[Any]:
        return await booking_service.list_my_bookings_for_api(current_user, as_mentor)

    async def get_booking(
        self,
        booking_id: UUID,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.get_booking_for_api(booking_id, current_user)

    async def update_status(
        self,
        booking_id: UUID,
        status_data: booking_models.BookingStatusUpdate,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        """
        Accept (confirmed) or decline/cancel (cancelled) a pending booking.
        """
        return await booking_service.update_status_for_api(booking_id, status_data, current_user)

    async def complete_booking(
        self,
        booking_id: UUID,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.complete_booking_for_api(booking_id, current_user)

# Instantiate the class and export its router
bookings_api = BookingsAPI()
router = bookings_api.router
