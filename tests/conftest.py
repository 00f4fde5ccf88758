"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- Database session (in-memory SQLite)
- Address validation pipeline using the local heuristic provider
- An ingested batch and a BatchService bound to the test session

Sample CSV uploads live in tests.helpers.
"""

import os

# The engine in src.db.connection is built at import time; point it at an
# in-memory database before anything imports it.
os.environ["DATABASE_URL"] = "sqlite://"

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.config import AddressValidationConfig
from src.db.models import Base, Batch
from src.services.address_validation import AddressValidationPipeline, build_pipeline
from src.services.batch_ingestion import BatchIngestionEngine
from src.services.batch_service import BatchService
from tests.helpers import INDIVIDUAL_CSV

# ============================================================================
# Database fixtures
# ============================================================================


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """In-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


# ============================================================================
# Service fixtures
# ============================================================================


@pytest.fixture
def validation_config() -> AddressValidationConfig:
    """Settings for the local heuristic provider."""
    return AddressValidationConfig(provider="mock", max_concurrency=2)


@pytest.fixture
def pipeline(validation_config: AddressValidationConfig) -> AddressValidationPipeline:
    """Validation chain that never leaves the process."""
    return build_pipeline(validation_config)


@pytest.fixture
def batch_service(
    db: Session,
    pipeline: AddressValidationPipeline,
    validation_config: AddressValidationConfig,
) -> BatchService:
    """BatchService bound to the test session."""
    return BatchService(db, pipeline=pipeline, config=validation_config)


@pytest.fixture
def batch(db: Session) -> Batch:
    """Draft batch with three valid rows (8, 24 and 12 oz)."""
    return BatchIngestionEngine(db).ingest(INDIVIDUAL_CSV.encode(), "orders.csv")
