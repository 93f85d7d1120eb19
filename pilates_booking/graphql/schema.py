import strawberry

from pilates_booking.graphql.bookings.mutations import BookingMutation
from pilates_booking.graphql.bookings.queries import BookingQuery
from pilates_booking.graphql.schedule.mutations import ScheduleMutation
from pilates_booking.graphql.schedule.queries import ScheduleQuery


@strawberry.type
class Query(BookingQuery, ScheduleQuery):
    @strawberry.field
    def hello(self) -> str:
        return "Hello from GraphQL!"


@strawberry.type
class Mutation(BookingMutation, ScheduleMutation):
    pass


schema = strawberry.Schema(query=Query, mutation=Mutation)
