'''
API endpoints for the mentor's availability editor.
'''
from datetime import date
from typing import Annotated, Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Response, status

from ..models import availability as availability_models
from ..services.availability_service import AvailabilityService
from ..services.security import CurrentUser, get_current_user

class AvailabilityAPI:
    """
    A class to encapsulate availability rules and blocked dates endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/availability",
            tags=["Availability"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/rules",
                self.list_rules,
                methods=["GET"],
                response_model=List[availability_models.AvailabilityRuleRead])

        self.router.add_api_route(
                "/rules",
                self.create_rules,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=List[availability_models.AvailabilityRuleRead])

        self.router.add_api_route(
                "/rules/{rule_id}",
                self.delete_rule,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)

        self.router.add_api_route(
                "/blocked-dates",
                self.list_blocked_dates,
                methods=["GET"],
                response_model=List[availability_models.BlockedDateRead])

        self.router.add_api_route(
                "/blocked-dates",
                self.block_dates,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=List[availability_models.BlockedDateRead])

        self.router.add_api_route(
                "/blocked-dates/{blocked_date}",
                self.unblock_date,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)

        self.router.add_api_route(
                "/blocked-dates/{blocked_date}/toggle",
                self.toggle_blocked_date,
                methods=["POST"])

        self.router.add_api_route(
                "/calendar",
                self.get_calendar,
                methods=["GET"],
                response_model=List[availability_models.CalendarDayRead])

    async def list_rules(
        self,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        """
        Lists the current mentor's availability rules.
        """
        return await availability_service.list_rules_for_api(current_user)

    async def create_rules(
        self,
        rules_data: availability_models.AvailabilityRulesCreate,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        """
        Adds a batch of availability windows for one date (or its weekday, if recurring).
        """
        return await availability_service.create_rules_for_api(rules_data, current_user)

    async def delete_rule(
        self,
        rule_id: UUID,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        await availability_service.delete_rule_for_api(rule_id, current_user)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    async def list_blocked_dates(
        self,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        return await availability_service.list_blocked_dates_for_api(current_user)

    async def block_dates(
        self,
        blocked_data: availability_models.BlockedDateCreate,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> List[Any]:
        """
        Blocks a date or an inclusive range of dates.
        """
        return await availability_service.block_dates_for_api(blocked_data, current_user)

    async def unblock_date(
        self,
        blocked_date: date,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        await availability_service.unblock_date_for_api(blocked_date, current_user)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    async def toggle_blocked_date(
        self,
        blocked_date: date,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ) -> dict:
        is_blocked = await availability_service.toggle_blocked_date_for_api(blocked_date, current_user)
        return {"date": blocked_date, "is_blocked": is_blocked}

    async def get_calendar(
        self,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        year: Annotated[int, Query(ge=2000, le=2100)],
        month: Annotated[int, Query(ge=1, le=12)]
    ) -> List[Any]:
        """
        Month overview for the mentor calendar.
        """
        return await availability_service.get_calendar_for_api(current_user, year, month)

# Instantiate the class and export its router
availability_api = AvailabilityAPI()
router = availability_api.router
