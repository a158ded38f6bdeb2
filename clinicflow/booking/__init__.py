from clinicflow.booking.assistant import AssistantInput, AssistantOutcome, BookingAssistant
from clinicflow.booking.intent import IntentClassifier
from clinicflow.booking.schemas import BookingIntent, BookingStatus
from clinicflow.booking.workflow import BookingRequestNotFound, BookingWorkflow, InvalidBookingTransition

__all__ = [
    "AssistantInput",
    "AssistantOutcome",
    "BookingAssistant",
    "BookingIntent",
    "BookingRequestNotFound",
    "BookingStatus",
    "BookingWorkflow",
    "IntentClassifier",
    "InvalidBookingTransition",
]
