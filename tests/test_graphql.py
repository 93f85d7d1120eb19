"""
GraphQL API tests: resolvers over an in-memory engine, plus the HTTP wiring.
"""
from datetime import date, time, timedelta

import pytest
from fastapi.testclient import TestClient

from pilates_booking.graphql.context import Context
from pilates_booking.graphql.schema import schema
from pilates_booking.main import app
from pilates_booking.security.jwt import create_access_token
from pilates_booking.services.booking_engine import BookingEngine
from pilates_booking.services.schedule_service import ScheduleService
from tests.conftest import (
    INSTRUCTOR_ID,
    RECEPTION,
    RecordingDispatcher,
    add_class,
    add_subscription,
    client,
)

# resolvers use the wall clock
FUTURE_DAY = date.today() + timedelta(days=30)

BOOK_CLASS = """
mutation Book($classId: Int!) {
    bookClass(classId: $classId) {
        success
        status
        message
        bookingId
        waitlistPosition
        errorCode
    }
}
"""

CANCEL_BOOKING = """
mutation Cancel($bookingId: Int!) {
    cancelBooking(bookingId: $bookingId) {
        success
        waitlistPromoted
        errorCode
    }
}
"""

ASSIGN_CLASS = """
mutation Assign($classId: Int!, $userId: Int!) {
    bookClass(classId: $classId, userId: $userId, overrideRestrictions: true) {
        status
        bookingId
        errorCode
    }
}
"""

COMPLETE_BOOKING = """
mutation Complete($bookingId: Int!) {
    completeBooking(bookingId: $bookingId) { success message status errorCode }
}
"""

CLASS_WAITLIST = """
query Waitlist($classId: Int!) {
    classWaitlist(classId: $classId) { userId position }
}
"""

CREATE_CLASS = """
mutation Create($input: CreateClassSessionInput!) {
    createClassSession(input: $input) {
        success
        message
        errorCode
        classSession { id time duration availableSpots room }
        conflict { classId startTime endTime resourceKind }
    }
}
"""

CHECK_CONFLICT = """
query Conflict($date: Date!, $resourceId: String!) {
    checkScheduleConflict(date: $date, time: "09:00", duration: 60, resourceId: $resourceId, kind: "instructor") {
        classId
        startTime
        endTime
        message
    }
}
"""


@pytest.fixture
def api(memory_factory, settings):
    engine = BookingEngine(memory_factory, RecordingDispatcher(), settings)
    schedule = ScheduleService(memory_factory, settings)

    async def execute(query, actor=None, **variables):
        context = Context(engine=engine, schedule=schedule, actor=actor)
        return await schema.execute(query, variable_values=variables, context_value=context)

    return execute


async def _seed(memory_factory, capacity=1, users=(1, 2)):
    session = await add_class(memory_factory, date=FUTURE_DAY, capacity=capacity)
    for user_id in users:
        await add_subscription(
            memory_factory, user_id,
            start_date=date.today() - timedelta(days=1),
            end_date=FUTURE_DAY + timedelta(days=30),
        )
    return session


class TestBookingApi:
    async def test_booking_requires_authentication(self, api, memory_factory):
        session = await _seed(memory_factory)

        result = await api(BOOK_CLASS, classId=session.id)

        assert result.errors
        assert result.errors[0].message == "Authentication required."

    async def test_book_then_waitlist_then_promote(self, api, memory_factory):
        session = await _seed(memory_factory)

        first = await api(BOOK_CLASS, actor=client(1), classId=session.id)
        second = await api(BOOK_CLASS, actor=client(2), classId=session.id)

        assert first.errors is None
        assert first.data["bookClass"]["status"] == "confirmed"
        assert second.data["bookClass"]["status"] == "waitlisted"
        assert second.data["bookClass"]["waitlistPosition"] == 1

        cancelled = await api(
            CANCEL_BOOKING, actor=client(1), bookingId=first.data["bookClass"]["bookingId"]
        )
        assert cancelled.data["cancelBooking"] == {
            "success": True, "waitlistPromoted": True, "errorCode": None
        }

    async def test_rejection_is_returned_as_data(self, api, memory_factory):
        result = await api(BOOK_CLASS, actor=client(1), classId=424242)

        assert result.errors is None
        assert result.data["bookClass"]["success"] is False
        assert result.data["bookClass"]["errorCode"] == "NotFoundError"

    async def test_waitlist_is_staff_only(self, api, memory_factory):
        session = await _seed(memory_factory, users=(1, 2, 3))
        for user_id in (1, 2, 3):
            await api(BOOK_CLASS, actor=client(user_id), classId=session.id)

        denied = await api(CLASS_WAITLIST, actor=client(1), classId=session.id)
        allowed = await api(CLASS_WAITLIST, actor=RECEPTION, classId=session.id)

        assert denied.errors[0].message == "Staff access required."
        assert allowed.data["classWaitlist"] == [
            {"userId": 2, "position": 1},
            {"userId": 3, "position": 2},
        ]


    async def test_reception_assigns_member_without_subscription(self, api, memory_factory):
        session = await _seed(memory_factory, users=())

        denied = await api(ASSIGN_CLASS, actor=client(9), classId=session.id, userId=9)
        assigned = await api(ASSIGN_CLASS, actor=RECEPTION, classId=session.id, userId=9)

        assert denied.data["bookClass"]["errorCode"] == "PermissionError"
        assert assigned.errors is None
        assert assigned.data["bookClass"]["status"] == "confirmed"

    async def test_complete_booking_is_staff_only(self, api, memory_factory):
        session = await _seed(memory_factory)
        booked = await api(BOOK_CLASS, actor=client(1), classId=session.id)
        booking_id = booked.data["bookClass"]["bookingId"]

        denied = await api(COMPLETE_BOOKING, actor=client(1), bookingId=booking_id)
        early = await api(COMPLETE_BOOKING, actor=RECEPTION, bookingId=booking_id)

        assert denied.errors[0].message == "Staff access required."
        assert early.data["completeBooking"] == {
            "success": False,
            "message": "Cannot complete a booking before the class starts",
            "status": None,
            "errorCode": "ValidationError",
        }

    def test_resolver_arguments_are_in_the_schema(self):
        sdl = str(schema)

        assert "overrideRestrictions: Boolean! = false" in sdl
        assert "completeBooking(bookingId: Int!): CompletionResponse!" in sdl


class TestScheduleApi:
    async def test_create_and_conflict(self, api):
        payload = {
            "name": "Mat Basics",
            "instructorId": INSTRUCTOR_ID,
            "date": FUTURE_DAY.isoformat(),
            "time": "09:30",
            "duration": 30,
            "capacity": 6,
            "room": "Mat Room",
        }
        created = await api(CREATE_CLASS, actor=RECEPTION, input=payload)
        clash = await api(CREATE_CLASS, actor=RECEPTION, input={**payload, "time": "09:00", "duration": 60})

        session = created.data["createClassSession"]["classSession"]
        assert session["time"] == "09:30"
        assert session["availableSpots"] == 6
        response = clash.data["createClassSession"]
        assert response["success"] is False
        assert response["errorCode"] == "ScheduleConflictError"
        assert response["conflict"] == {
            "classId": session["id"],
            "startTime": "09:30",
            "endTime": "10:00",
            "resourceKind": "instructor",
        }

    async def test_validation_errors_are_listed(self, api):
        payload = {
            "name": "Mat Basics",
            "instructorId": INSTRUCTOR_ID,
            "date": FUTURE_DAY.isoformat(),
            "time": "9am",
            "duration": 500,
            "capacity": 6,
        }

        result = await api(CREATE_CLASS, actor=RECEPTION, input=payload)

        response = result.data["createClassSession"]
        assert response["errorCode"] == "ValidationError"
        assert "Time must be in HH:MM format" in response["message"]
        assert "Duration must be between 15-180 minutes" in response["message"]

    async def test_clients_cannot_create_classes(self, api):
        payload = {
            "name": "Mat Basics",
            "instructorId": INSTRUCTOR_ID,
            "date": FUTURE_DAY.isoformat(),
            "time": "09:00",
            "duration": 60,
            "capacity": 6,
        }

        result = await api(CREATE_CLASS, actor=client(1), input=payload)

        assert result.errors[0].message == "Staff access required."

    async def test_check_schedule_conflict(self, api, memory_factory):
        existing = await add_class(
            memory_factory, date=FUTURE_DAY, start_time=time(9, 30), duration_minutes=30
        )

        busy = await api(CHECK_CONFLICT, actor=RECEPTION, date=FUTURE_DAY.isoformat(),
                         resourceId=str(INSTRUCTOR_ID))
        free = await api(CHECK_CONFLICT, actor=RECEPTION, date=FUTURE_DAY.isoformat(), resourceId="55")

        assert busy.data["checkScheduleConflict"]["classId"] == existing.id
        assert busy.data["checkScheduleConflict"]["endTime"] == "10:00"
        assert free.data["checkScheduleConflict"] is None


class TestHttp:
    """Routing, token decoding and context wiring through FastAPI."""

    @pytest.fixture
    def http(self, memory_factory, settings):
        app.state.booking_engine = BookingEngine(memory_factory, RecordingDispatcher(), settings)
        app.state.schedule_service = ScheduleService(memory_factory, settings)
        # no ``with`` block: lifespan (database, background tasks) is not started
        return TestClient(app)

    def test_health(self, http):
        response = http.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_token_identifies_the_actor(self, http):
        token = create_access_token({"user_id": 7, "role": "client"})

        response = http.post(
            "/graphql",
            json={"query": BOOK_CLASS, "variables": {"classId": 1}},
            headers={"x-access-token": token},
        )

        body = response.json()
        assert body["data"]["bookClass"]["errorCode"] == "NotFoundError"

    def test_invalid_token_is_anonymous(self, http):
        response = http.post(
            "/graphql",
            json={"query": BOOK_CLASS, "variables": {"classId": 1}},
            headers={"x-access-token": "not-a-token"},
        )

        body = response.json()
        assert body["data"] is None
        assert body["errors"][0]["message"] == "Authentication required."
