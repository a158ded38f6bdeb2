from clinicflow.models.automation import AutomationExecution, AutomationRule
from clinicflow.models.booking import BookingIntentLog, BookingNotification, BookingRequest
from clinicflow.models.conversation import Conversation, Escalation, Message
from clinicflow.models.customer import Customer
from clinicflow.models.tenant import Tenant

__all__ = [
    "AutomationExecution",
    "AutomationRule",
    "BookingIntentLog",
    "BookingNotification",
    "BookingRequest",
    "Conversation",
    "Customer",
    "Escalation",
    "Message",
    "Tenant",
]
