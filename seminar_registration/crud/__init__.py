from .crud_slot import slot
from .crud_registration import registration
from .crud_waiting_list import waiting_list, waiting_list_promotion
from .crud_email_queue import email_queue
