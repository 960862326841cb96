"""
Shared fixtures: in-memory database, fake Redis and the chain/KMS/AMQP doubles.
"""

import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from blockchain_service.blockchain.registry import ContractRegistry
from blockchain_service.core.config import Settings
from blockchain_service.models import Base, Organization
from blockchain_service.processing.handlers import HandlerContext
from blockchain_service.processing.processor import BlockchainJobProcessor
from blockchain_service.repositories.job_repository import JobRepository
from blockchain_service.repositories.organization_repository import OrganizationRepository
from blockchain_service.services.event_publisher import EventPublisher
from blockchain_service.services.job_queue import JobQueue

from tests.fakes import (
    ASSET_REGISTRY_ADDRESS,
    FACTORY_ADDRESS,
    ORG_CONTRACT_ADDRESS,
    USDC_ADDRESS,
    USER_KEY,
    FakeChain,
    FakeExchange,
    FakeKMS,
)


ORG_ID = "org-1"
SITE_ADDRESS = "permian.empressa.io"
EMPTY_ORG_ID = "org-2"
EMPTY_SITE_ADDRESS = "pending.empressa.io"


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        database_url="sqlite+aiosqlite://",
        factory_proxy_contract_address=FACTORY_ADDRESS,
        asset_registry_contract_address=ASSET_REGISTRY_ADDRESS,
        usdc_contract_address=USDC_ADDRESS,
        faucet_native_amount=10**18,
        faucet_usdc_amount=1_000_000_000,
        queue_backoff_delay=5.0,
        queue_attempts=3,
    )


@pytest.fixture
async def session_factory():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        session.add_all([
            Organization(
                id=ORG_ID,
                name="Permian Holdings",
                site_address=SITE_ADDRESS,
                contract_address=ORG_CONTRACT_ADDRESS,
            ),
            Organization(
                id=EMPTY_ORG_ID,
                name="Pending Org",
                site_address=EMPTY_SITE_ADDRESS,
                contract_address=None,
            ),
        ])
        await session.commit()

    yield factory
    await engine.dispose()


@pytest.fixture
def job_repository(session_factory) -> JobRepository:
    return JobRepository(session_factory)


@pytest.fixture
def organization_repository(session_factory) -> OrganizationRepository:
    return OrganizationRepository(session_factory)


@pytest.fixture
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def job_queue(redis) -> JobQueue:
    return JobQueue(redis, name="test-jobs", prefix="test:", poll_timeout=1, retention=60)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def kms() -> FakeKMS:
    return FakeKMS(user_keys={"user-1": USER_KEY, "principal-1": USER_KEY})


@pytest.fixture
def exchange() -> FakeExchange:
    return FakeExchange()


@pytest.fixture
def publisher(exchange) -> EventPublisher:
    return EventPublisher(url="amqp://unused", exchange_name="test.events", exchange=exchange)


@pytest.fixture
def handler_context(chain, kms, organization_repository, test_settings) -> HandlerContext:
    return HandlerContext(
        chain=chain,
        registry=ContractRegistry(test_settings),
        kms=kms,
        organizations=organization_repository,
        config=test_settings,
    )


@pytest.fixture
def processor(job_repository, publisher, handler_context) -> BlockchainJobProcessor:
    return BlockchainJobProcessor(job_repository, publisher, handler_context)
