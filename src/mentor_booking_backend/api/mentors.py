'''
Public, per-mentor endpoints used by the booking dialog.
'''
from datetime import date
from typing import Annotated, Any, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query

from ..models import availability as availability_models
from ..models.services import ServiceRead
from ..services.availability_service import AvailabilityService

class MentorsAPI:
    """
    A class to encapsulate the student-facing availability lookups.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/mentors",
            tags=["Mentors"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/{mentor_id}/services",
                self.list_services,
                methods=["GET"],
                response_model=List[ServiceRead])

        self.router.add_api_route(
                "/{mentor_id}/slots",
                self.get_slots,
                methods=["GET"],
                response_model=availability_models.SlotsRead)

        self.router.add_api_route(
                "/{mentor_id}/available-dates",
                self.get_available_dates,
                methods=["GET"],
                response_model=availability_models.AvailableDatesRead)

    async def list_services(
        self,
        mentor_id: UUID,
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        """
        Lists the services the mentor currently offers.
        """
        return await availability_service.get_services_for_api(mentor_id)

    async def get_slots(
        self,
        mentor_id: UUID,
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        target_date: Annotated[date, Query(alias="date", description="Date in the mentor's timezone (YYYY-MM-DD)")],
        duration: Annotated[int, Query(gt=0, le=24 * 60)] = 30
    ) -> Any:
        """
        Returns the bookable slots of one date, grouped by time of day.
        """
        return await availability_service.get_slots_for_api(mentor_id, target_date, duration)

    async def get_available_dates(
        self,
        mentor_id: UUID,
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        start: Optional[date] = None,
        days: Annotated[int, Query(gt=0, le=62)] = 14,
        duration: Annotated[int, Query(gt=0, le=24 * 60)] = 30
    ) -> Any:
        """
        Returns the dates with at least one free slot, starting at `start` (default today).
        """
        return await availability_service.get_available_dates_for_api(mentor_id, start, days, duration)

# Instantiate the class and export its router
mentors_api = MentorsAPI()
router = mentors_api.router
