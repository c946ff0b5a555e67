"""
Request-scoped access to the services built in the application lifespan.
"""

from fastapi import Request

from ticketing.services.booking_service import ReservationCoordinator
from ticketing.services.payment_service import PaymentService


def get_coordinator(request: Request) -> ReservationCoordinator:
    return request.app.state.coordinator


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service
