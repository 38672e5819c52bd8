"""FastAPI router exposing the trust ledger."""
from __future__ import annotations

import os
from datetime import datetime
from typing import Dict, Iterator, List, NoReturn, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from prometheus_client import make_asgi_app
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import create_engine
from sqlmodel import Session, SQLModel

from common.audit import log_event
from common.auth import caller_principal
from common.datetime import parse_timestamp
from common.logging import configure_logging

from .errors import LedgerError
from .events import LedgerEvent
from .models import UINT64_MAX, LoanRecord, TrustScore
from .providers.attestation import HmacAttestationVerifier
from .providers.mock_fhe import MockDecryptionOracle, MockFheEngine
from .providers.relayer import RelayerDecryptionOracle
from .service import TrustLedgerService

SERVICE_NAME = "trust_ledger"

LEDGER_DB_URL = os.getenv("LEDGER_DB_URL", "sqlite:///./trust_ledger.db")
ORACLE_PROVIDER = os.getenv("ORACLE_PROVIDER", "mock")

_engine = None


def _db_engine():
    global _engine
    if _engine is None:
        _engine = create_engine(
            LEDGER_DB_URL,
            echo=False,
            connect_args={"check_same_thread": False}
            if LEDGER_DB_URL.startswith("sqlite")
            else {},
        )
        SQLModel.metadata.create_all(_engine)
    return _engine


# ---------------------------------------------------------------------------
# Dependency injection helpers
# ---------------------------------------------------------------------------


def get_session() -> Iterator[Session]:
    with Session(_db_engine()) as session:
        yield session


def get_service(
    request: Request, session: Session = Depends(get_session)
) -> TrustLedgerService:
    state = request.app.state
    return TrustLedgerService(session, state.arithmetic, state.oracle, state.verifier)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


def _hex_bytes(value: str) -> bytes:
    try:
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    except ValueError as exc:
        raise ValueError("expected hex encoded bytes") from exc


class CreateLoanRequest(BaseModel):
    encrypted_repayment: str = Field(..., min_length=2)
    input_proof: str = Field(..., min_length=2)
    loan_amount: int = Field(..., ge=0, le=UINT64_MAX)
    due_date: Union[int, str]

    @field_validator("encrypted_repayment", "input_proof")
    @classmethod
    def _check_hex(cls, value: str) -> str:
        _hex_bytes(value)
        return value


class LoanView(BaseModel):
    borrower: str
    index: int
    handle: str
    loan_amount: int
    due_date: datetime
    is_repaid: bool
    is_verified: bool
    clear_repayment: Optional[int] = None

    @classmethod
    def of(cls, record: LoanRecord) -> "LoanView":
        return cls(
            borrower=record.borrower,
            index=record.position,
            handle=record.encrypted_repayment,
            loan_amount=record.loan_amount,
            due_date=record.due_date,
            is_repaid=record.is_repaid,
            is_verified=record.is_verified,
            clear_repayment=record.clear_repayment if record.is_verified else None,
        )


class ScoreView(BaseModel):
    user: str
    handle: str
    loan_count: int
    is_verified: bool
    clear_score: Optional[int] = None
    computed_at: datetime

    @classmethod
    def of(cls, score: TrustScore) -> "ScoreView":
        return cls(
            user=score.user,
            handle=score.encrypted_score,
            loan_count=score.loan_count,
            is_verified=score.is_verified,
            clear_score=score.clear_score if score.is_verified else None,
            computed_at=score.computed_at,
        )


class VerifyResponse(BaseModel):
    target: str
    clear_value: int


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _fail(action: str, actor: str, exc: LedgerError, **details) -> NoReturn:
    log_event(
        service=SERVICE_NAME,
        action=f"{action}_FAILED",
        actor=actor,
        details={**details, "error": exc.code, "message": str(exc)},
    )
    raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc


# ---------------------------------------------------------------------------
# Router definition
# ---------------------------------------------------------------------------

router = APIRouter(prefix="/api/trust/v1", tags=["trust"])


def create_app(
    *,
    arithmetic: Optional[MockFheEngine] = None,
    oracle=None,
    verifier=None,
) -> FastAPI:
    """Factory used by tests and the ASGI entrypoint."""
    configure_logging(os.getenv("LOG_FORMAT", "json"), service_name=SERVICE_NAME)
    app = FastAPI(title="Private Trust Ledger")
    app.state.arithmetic = arithmetic or MockFheEngine()
    if oracle is None:
        if ORACLE_PROVIDER == "relayer":
            oracle = RelayerDecryptionOracle()
        else:
            oracle = MockDecryptionOracle(app.state.arithmetic)
    app.state.oracle = oracle
    app.state.verifier = verifier or HmacAttestationVerifier()
    app.include_router(router)
    app.mount("/metrics", make_asgi_app())
    return app


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok", "service": SERVICE_NAME}


@router.post("/loans", response_model=LoanView, status_code=status.HTTP_201_CREATED)
async def create_loan(
    req: CreateLoanRequest,
    svc: TrustLedgerService = Depends(get_service),
    principal: str = Depends(caller_principal),
):
    try:
        due_date = parse_timestamp(req.due_date)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=422, detail="invalid_due_date") from exc
    try:
        record = svc.create_loan(
            principal,
            _hex_bytes(req.encrypted_repayment),
            _hex_bytes(req.input_proof),
            req.loan_amount,
            due_date,
        )
    except LedgerError as exc:
        _fail("LOAN_CREATE", principal, exc, loan_amount=req.loan_amount)
    log_event(
        service=SERVICE_NAME,
        action="LOAN_CREATED",
        actor=principal,
        details={"index": record.position, "loan_amount": record.loan_amount},
    )
    return LoanView.of(record)


@router.get("/loans/{borrower}", response_model=List[LoanView])
async def list_loans(
    borrower: str,
    svc: TrustLedgerService = Depends(get_service),
    _: str = Depends(caller_principal),
):
    return [LoanView.of(r) for r in svc.loans(borrower)]


@router.post("/loans/{borrower}/{index}/verify", response_model=VerifyResponse)
async def verify_repayment(
    borrower: str,
    index: int,
    svc: TrustLedgerService = Depends(get_service),
    principal: str = Depends(caller_principal),
):
    try:
        value = await svc.verify_repayment(borrower, index, principal)
    except LedgerError as exc:
        _fail("REPAYMENT_VERIFY", principal, exc, borrower=borrower, index=index)
    log_event(
        service=SERVICE_NAME,
        action="REPAYMENT_VERIFIED",
        actor=principal,
        details={"borrower": borrower, "index": index},
    )
    return VerifyResponse(target=f"{borrower}#{index}", clear_value=value)


@router.post("/scores/{user}", response_model=ScoreView, status_code=status.HTTP_201_CREATED)
async def compute_score(
    user: str,
    svc: TrustLedgerService = Depends(get_service),
    principal: str = Depends(caller_principal),
):
    try:
        score = svc.compute_score(user)
    except LedgerError as exc:
        _fail("SCORE_COMPUTE", principal, exc, user=user)
    log_event(
        service=SERVICE_NAME,
        action="SCORE_COMPUTED",
        actor=principal,
        details={"user": user, "loan_count": score.loan_count},
    )
    return ScoreView.of(score)


@router.get("/scores/{user}", response_model=ScoreView)
async def get_score(
    user: str,
    svc: TrustLedgerService = Depends(get_service),
    _: str = Depends(caller_principal),
):
    score = svc.score(user)
    if score is None:
        raise HTTPException(status_code=404, detail="score_not_found")
    return ScoreView.of(score)


@router.post("/scores/{user}/verify", response_model=VerifyResponse)
async def verify_score(
    user: str,
    svc: TrustLedgerService = Depends(get_service),
    principal: str = Depends(caller_principal),
):
    try:
        value = await svc.verify_score(user, principal)
    except LedgerError as exc:
        _fail("SCORE_VERIFY", principal, exc, user=user)
    log_event(
        service=SERVICE_NAME,
        action="SCORE_VERIFIED",
        actor=principal,
        details={"user": user},
    )
    return VerifyResponse(target=user, clear_value=value)


@router.get("/scores/{user}/analysis")
async def score_analysis(
    user: str,
    svc: TrustLedgerService = Depends(get_service),
    _: str = Depends(caller_principal),
):
    try:
        return svc.analysis(user)
    except LedgerError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc


@router.get("/events", response_model=List[LedgerEvent])
async def list_events(
    after: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    svc: TrustLedgerService = Depends(get_service),
    _: str = Depends(caller_principal),
):
    return svc.events_after(after, limit)


@router.get("/stats")
async def stats(
    svc: TrustLedgerService = Depends(get_service),
    _: str = Depends(caller_principal),
):
    return svc.stats()


# ASGI entrypoint: ``uvicorn trust_ledger.api:app``
app = create_app()
