'''
Enums mirroring the database ENUM types.
'''
import enum


class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member values."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class SessionTypeEnum(ListableEnum):
    ONE_ON_ONE = "oneOnOneSession"
    CHAT_ADVICE = "chatAdvice"
    DIGITAL_PRODUCTS = "digitalProducts"
    NOTES = "notes"


class BookingStatusEnum(ListableEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MeetingProviderEnum(ListableEnum):
    JITSI = "jitsi"
    ZOOM = "zoom"
    GOOGLE_MEET = "google_meet"


class BookingRequestStatusEnum(ListableEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


# Bookings in these statuses occupy their slot.
ACTIVE_BOOKING_STATUSES = (BookingStatusEnum.PENDING.value, BookingStatusEnum.CONFIRMED.value)
