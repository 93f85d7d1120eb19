from dataclasses import dataclass
from typing import Optional

from fastapi import Request, Response
from strawberry.fastapi import BaseContext

from pilates_booking.core.identity import Actor
from pilates_booking.security.jwt import actor_from_token
from pilates_booking.services.booking_engine import BookingEngine
from pilates_booking.services.schedule_service import ScheduleService


@dataclass
class Context(BaseContext):
    engine: BookingEngine
    schedule: ScheduleService
    actor: Optional[Actor] = None
    request: Optional[Request] = None
    response: Optional[Response] = None


async def build_context(request: Request, response: Response) -> Context:
    actor = actor_from_token(request.headers.get("x-access-token"))
    return Context(
        engine=request.app.state.booking_engine,
        schedule=request.app.state.schedule_service,
        actor=actor,
        request=request,
        response=response,
    )
