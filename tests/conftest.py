from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from common import audit
from common import secrets as secrets_module
from trust_ledger.providers.attestation import HmacAttestationVerifier
from trust_ledger.providers.mock_fhe import MockDecryptionOracle, MockFheEngine
from trust_ledger.service import TrustLedgerService


def _memory_engine():
    return create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


# ---------------------------------------------------------------------------
# Secrets and audit journal
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _secrets() -> None:
    """Provide deterministic keys and tokens via the secrets manager."""

    secrets_module.secrets.set_override(
        {
            "API_TOKENS": {"alice": "alicetoken", "bob": "bobtoken"},
            "JWT_SECRET": "testsecret",
            "ORACLE_SIGNING_KEY": "test-oracle-key",
            "FHE_INPUT_KEY": "test-input-key",
        }
    )
    yield
    secrets_module.secrets.set_override({})


@pytest.fixture(autouse=True)
def audit_engine():
    engine = _memory_engine()
    audit.set_engine(engine)
    return engine


# ---------------------------------------------------------------------------
# Ledger wiring
# ---------------------------------------------------------------------------


@pytest.fixture()
def db_engine():
    engine = _memory_engine()
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture()
def session(db_engine):
    with Session(db_engine) as s:
        yield s


@pytest.fixture()
def fhe() -> MockFheEngine:
    return MockFheEngine()


@pytest.fixture()
def oracle(fhe) -> MockDecryptionOracle:
    return MockDecryptionOracle(fhe, latency=0)


@pytest.fixture()
def verifier() -> HmacAttestationVerifier:
    return HmacAttestationVerifier()


@pytest.fixture()
def service(session, fhe, oracle, verifier) -> TrustLedgerService:
    return TrustLedgerService(session, fhe, oracle, verifier)


DUE = datetime(2026, 1, 31, 12, 0, 0)


@pytest.fixture()
def make_loan(service, fhe):
    """Create a loan for *borrower* whose encrypted repayment is *repayment*."""

    def _make(borrower: str, repayment: int, amount: int, due: datetime = DUE):
        ciphertext, proof = fhe.encrypt_input(repayment)
        return service.create_loan(borrower, ciphertext, proof, amount, due)

    return _make


@pytest.fixture()
def anyio_backend() -> str:
    """The ledger's async code is built on asyncio; run anyio tests there only."""

    return "asyncio"
