from .User import User, Role, TokenBlocklist
from .AuditLog import AuditLog
from .Camp import Camp
from .Athlete import Athlete
from .Registration import Registration
from .CampDay import CampDay
from .AttendanceRecord import AttendanceRecord
from .PickupToken import PickupToken, digest_secret
from .base import (
    SoftDeleteMixin, CampDayStatus, AttendanceStatus, CheckInMethod, CheckOutMethod,
    PickupTokenStatus, RegistrationStatus, PaymentStatus, SLOT_HOLDING_STATUSES,
)
