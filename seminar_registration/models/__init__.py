# Import all models so Base.metadata knows every table.
# Order matters for foreign keys - slots first.

from seminar_registration.db.base_class import Base
from seminar_registration.models.slot import SeminarSlot
from seminar_registration.models.registration import Registration
from seminar_registration.models.waiting_list import WaitingListEntry, WaitingListPromotion
from seminar_registration.models.email_queue import EmailQueue
