"""Application factory.

Run with `uvicorn --factory marketplace.main:create_app`; configuration
comes from the environment (see `marketplace.db` and `marketplace.access`).
"""
from fastapi import FastAPI
from sqlalchemy.engine import Engine
from .access import AccessGate
from .clock import Clock, SystemClock
from .db import Base, build_engine, make_session_factory
from .engine import AuctionEngine
from .stores import BidStore, ListingStore
from .api.routes import router as api_router
from . import models  # noqa: F401 ensure models are imported so tables are known


def create_app(engine: Engine = None, clock: Clock = None, gate: AccessGate = None) -> FastAPI:
    engine = engine or build_engine()
    clock = clock or SystemClock()
    gate = gate or AccessGate.from_env(clock=clock)
    session_factory = make_session_factory(engine)

    # create FastAPI instance
    app = FastAPI(title="Marketplace Auctions")
    app.state.gate = gate
    app.state.auction = AuctionEngine(ListingStore(session_factory), BidStore(session_factory), clock)
    app.include_router(api_router)

    @app.on_event("startup")
    def on_startup_create_tables():
        # Ensure database tables are created on startup
        Base.metadata.create_all(bind=engine)

    return app

