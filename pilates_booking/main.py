from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from strawberry.fastapi import GraphQLRouter

from pilates_booking.core.config import get_settings
from pilates_booking.core.logging_config import get_logger, setup_logging
from pilates_booking.db.database import create_session_factory, engine_from_settings, init_models
from pilates_booking.graphql.context import build_context
from pilates_booking.graphql.schema import schema
from pilates_booking.repositories.sql_repository import SqlAlchemyRepositoryFactory
from pilates_booking.services.booking_engine import BookingEngine
from pilates_booking.services.maintenance import MaintenanceService
from pilates_booking.services.notifications import QueuedNotificationDispatcher, SqlNotificationSink
from pilates_booking.services.schedule_service import ScheduleService

setup_logging()
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    db_engine = engine_from_settings(settings)
    if settings.create_tables:
        await init_models(db_engine)

    session_factory = create_session_factory(db_engine)
    repositories = SqlAlchemyRepositoryFactory(session_factory)
    dispatcher = QueuedNotificationDispatcher(
        SqlNotificationSink(session_factory), maxsize=settings.notification_queue_size
    )
    booking_engine = BookingEngine(repositories, dispatcher, settings)
    maintenance = MaintenanceService(booking_engine)

    app.state.booking_engine = booking_engine
    app.state.schedule_service = ScheduleService(repositories, settings)

    dispatcher.start()
    maintenance.start()
    logger.info("Booking engine ready on %s", db_engine.url.render_as_string(hide_password=True))
    try:
        yield
    finally:
        await maintenance.stop()
        await dispatcher.stop()
        await db_engine.dispose()
        logger.info("Booking engine stopped")


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

graphql_app = GraphQLRouter(
    schema=schema,
    context_getter=build_context,
    graphiql=True
)
app.include_router(graphql_app, prefix="/graphql")


@app.get("/")
async def health():
    return {"status": "ok"}
