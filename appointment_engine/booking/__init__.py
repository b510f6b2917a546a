from appointment_engine.booking.state_machine import (
    BookingAction,
    BookingStateMachine,
    Transition,
)

__all__ = [
    "BookingStateMachine",
    "BookingAction",
    "Transition",
]
