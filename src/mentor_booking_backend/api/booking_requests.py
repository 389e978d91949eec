'''
API endpoints for custom time requests.
'''
from typing import Annotated, Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, Response, status

from ..models import booking_request as request_models
from ..services.booking_request_service import BookingRequestService
from ..services.security import CurrentUser, get_current_user

class BookingRequestsAPI:
    def __init__(self):
        self.router = APIRouter(
            prefix="/booking-requests",
            tags=["Booking Requests"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_requests,
                methods=["GET"],
                response_model=List[request_models.BookingRequestRead])

        self.router.add_api_route(
                "/",
                self.create_request,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=request_models.BookingRequestRead)

        self.router.add_api_route(
                "/{request_id}/response",
                self.respond_to_request,
                methods=["POST"],
                response_model=request_models.BookingRequestRead)

        self.router.add_api_route(
                "/{request_id}",
                self.delete_request,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)

    async def list_requests(
        self,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        request_service: Annotated[BookingRequestService, Depends(BookingRequestService)],
        as_mentor: bool = False
    ) -> List[Any]:
        """
        The requests the user sent, or with `as_mentor` the ones they received.
        """
        return await request_service.list_requests_for_api(current_user, as_mentor)

    async def create_request(
        self,
        request_data: request_models.BookingRequestCreate,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        request_service: Annotated[BookingRequestService, Depends(BookingRequestService)]
    ) -> Any:
        return await request_service.create_request_for_api(request_data, current_user)

    async def respond_to_request(
        self,
        request_id: UUID,
        response_data: request_models.BookingRequestResponse,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        request_service: Annotated[BookingRequestService, Depends(BookingRequestService)]
    ) -> Any:
        return await request_service.respond_to_request_for_api(request_id, response_data, current_user)

    async def delete_request(
        self,
        request_id: UUID,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        request_service: Annotated[BookingRequestService, Depends(BookingRequestService)]
    ):
        await request_service.delete_request_for_api(request_id, current_user)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

# Instantiate the class and export its router
booking_requests_api = BookingRequestsAPI()
router = booking_requests_api.router
