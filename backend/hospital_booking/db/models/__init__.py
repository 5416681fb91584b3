from .appointment import AppointmentModel
from .payment import PaymentModel

__all__ = ["AppointmentModel", "PaymentModel"]
