'''
The closed set of services a mentor can offer, parsed from the
`service_pricing` JSON column of expert_profiles.
'''
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union, Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..common.logger import log
from ..database.db_enums import SessionTypeEnum


ONE_ON_ONE_DURATIONS = [30, 60, 90]
DEFAULT_SESSION_DURATION = 30


class ServiceBase(BaseModel):
    name: str
    price: Decimal = Field(Decimal("0"), ge=0)
    discount_price: Optional[Decimal] = Field(None, ge=0)
    has_free_demo: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def needs_scheduling(self) -> bool:
        return False

    @property
    def duration_minutes(self) -> int:
        return 0


class OneOnOneSession(ServiceBase):
    """A live video call. The only service that occupies a calendar slot."""
    type: Literal[SessionTypeEnum.ONE_ON_ONE.value]
    name: str = "1-on-1 Career Strategy Call"
    duration: int = Field(DEFAULT_SESSION_DURATION, gt=0)
    durations: list[int] = Field(default_factory=lambda: list(ONE_ON_ONE_DURATIONS))

    @property
    def needs_scheduling(self) -> bool:
        return True

    @property
    def duration_minutes(self) -> int:
        return self.duration


class ChatAdvice(ServiceBase):
    type: Literal[SessionTypeEnum.CHAT_ADVICE.value]
    name: str = "Career Clarity"


class DigitalProduct(ServiceBase):
    type: Literal[SessionTypeEnum.DIGITAL_PRODUCTS.value]
    name: str = "Resource Bundle"


class SessionNotes(ServiceBase):
    type: Literal[SessionTypeEnum.NOTES.value]
    name: str = "Notes & Resources"


Service = Annotated[
    Union[OneOnOneSession, ChatAdvice, DigitalProduct, SessionNotes],
    Field(discriminator='type')
]

ServiceValidator = TypeAdapter(Service)


def parse_service_catalog(service_pricing: Optional[dict[str, Any]]) -> list[Service]:
    """
    Builds the list of enabled services from a mentor's pricing JSON, e.g.
    {"oneOnOneSession": {"enabled": true, "price": 500, "hasFreeDemo": false}}.
    Disabled, unknown and malformed entries are skipped.
    """
    services: list[Service] = []
    if not service_pricing:
        return services

    for service_type in SessionTypeEnum:
        entry = service_pricing.get(service_type.value)
        if not isinstance(entry, dict) or not entry.get("enabled"):
            continue
        raw = {
            "type": service_type.value,
            "price": entry.get("price") or 0,
            "discount_price": entry.get("discount_price"),
            "has_free_demo": bool(entry.get("hasFreeDemo", False)),
        }
        if entry.get("name"):
            raw["name"] = entry["name"]
        if service_type is SessionTypeEnum.ONE_ON_ONE and entry.get("duration"):
            raw["duration"] = entry["duration"]
        try:
            services.append(ServiceValidator.validate_python(raw))
        except ValidationError as e:
            log.warning(f"Skipping malformed '{service_type.value}' pricing entry: {e}")
    return services


def find_service(services: list[Service], service_type: SessionTypeEnum, duration: Optional[int] = None) -> Optional[Service]:
    """
    Returns the catalog entry for `service_type`. For one-on-one sessions a
    `duration` picks one of the offered durations.
    """
    for service in services:
        if service.type != service_type.value:
            continue
        if isinstance(service, OneOnOneSession) and duration is not None:
            if duration not in service.durations and duration != service.duration:
                return None
            return service.model_copy(update={"duration": duration})
        return service
    return None


class ServiceRead(BaseModel):
    type: SessionTypeEnum
    name: str
    price: Decimal
    discount_price: Optional[Decimal] = None
    has_free_demo: bool
    needs_scheduling: bool
    duration: int
    durations: list[int] = Field(default_factory=list)

    @classmethod
    def from_service(cls, service: Service) -> 'ServiceRead':
        return cls(
            type=service.type,
            name=service.name,
            price=service.price,
            discount_price=service.discount_price,
            has_free_demo=service.has_free_demo,
            needs_scheduling=service.needs_scheduling,
            duration=service.duration_minutes,
            durations=getattr(service, "durations", []),
        )
