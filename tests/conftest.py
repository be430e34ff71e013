# tests/conftest.py
# -*- coding: utf-8 -*-
"""
Config global de tests para ScholarPay.

- Variables de entorno de prueba ANTES de importar scholarpay
- Base SQLite temporal por test (aiosqlite + NullPool): cada sesión abre su
  propia conexión, así los verificadores concurrentes compiten de verdad
- Dobles de prueba: FakeProcessor (procesador) y RecordingSink (notificaciones)
- Seeder: alta rápida de perfiles, becas, cupones y referidos
"""

import asyncio
import dataclasses
import os
import tempfile
from collections.abc import AsyncIterator
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

_TMP_DIR = Path(tempfile.mkdtemp(prefix="scholarpay-tests-"))

# -----------------------------------------------------------------------------
# 0) Entorno de pruebas (antes de cualquier import de scholarpay)
# -----------------------------------------------------------------------------
os.environ["PYTHON_ENV"] = "test"
os.environ.setdefault("DB_URL", f"sqlite+aiosqlite:///{_TMP_DIR / 'app.db'}")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("FRONTEND_URL", "https://app.scholarpay.test")

import httpx  # noqa: E402
import pytest  # noqa: E402
from asgi_lifespan import LifespanManager  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from scholarpay.modules.billing.dto import ProcessorCheckout, ProcessorSession, ProcessorTransfer  # noqa: E402
from scholarpay.modules.billing.enums import FeeType, NotificationTarget, PaymentRail  # noqa: E402
from scholarpay.modules.billing.errors import CheckoutSessionNotFoundError, PaymentProcessorError  # noqa: E402
from scholarpay.modules.billing.models import (  # noqa: E402
    CartItem,
    Coupon,
    Scholarship,
    ScholarshipApplication,
    Seller,
    StudentProfile,
    University,
    UsedReferralCode,
    UserFeeOverride,
)
from scholarpay.modules.billing.services.checkout_service import CheckoutRequestBuilder  # noqa: E402
from scholarpay.modules.billing.services.notification_service import NotificationFanout  # noqa: E402
from scholarpay.modules.billing.services.settlement_service import SettlementVerifier  # noqa: E402
from scholarpay.shared.config.settings_payments import PaymentsSettings, reset_payments_settings  # noqa: E402
from scholarpay.shared.database import Base  # noqa: E402
from scholarpay.shared.database.database import build_engine, build_sessionmaker  # noqa: E402


# -----------------------------------------------------------------------------
# 1) Base de datos
# -----------------------------------------------------------------------------
@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# -----------------------------------------------------------------------------
# 2) Configuración de pagos
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _fresh_payments_settings():
    reset_payments_settings()
    yield
    reset_payments_settings()


@pytest.fixture
def payments_settings() -> PaymentsSettings:
    return PaymentsSettings(
        stripe_secret_key="sk_test_dummy",
        frontend_url="https://app.scholarpay.test",
        admin_notification_email="admin@scholarpay.test",
        notification_webhook_url=None,
    )


# -----------------------------------------------------------------------------
# 3) Dobles de prueba
# -----------------------------------------------------------------------------
class FakeProcessor:
    """Procesador en memoria con la misma superficie que StripeProvider."""

    def __init__(self):
        self.sessions: Dict[str, ProcessorSession] = {}
        self.created: List[Dict[str, Any]] = []
        self.retrieve_calls = 0
        self.create_error: Optional[Exception] = None
        self.retrieve_error: Optional[Exception] = None
        self.transfers: List[Dict[str, Any]] = []
        self.transfer_error: Optional[Exception] = None
        self.transfer_pending = False

    async def create_checkout_session(
        self,
        *,
        line_item,
        rail,
        success_url,
        cancel_url,
        metadata,
        client_reference_id=None,
        customer_email=None,
    ) -> ProcessorCheckout:
        if self.create_error is not None:
            raise self.create_error
        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append(
            dict(
                session_id=session_id,
                line_item=line_item,
                rail=rail,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=dict(metadata),
                client_reference_id=client_reference_id,
                customer_email=customer_email,
            )
        )
        self.sessions[session_id] = ProcessorSession(
            session_id=session_id,
            status="open",
            payment_status="unpaid",
            amount_total=line_item.unit_amount_minor_units,
            currency=line_item.currency,
            metadata=dict(metadata),
            client_reference_id=client_reference_id,
            customer_email=customer_email,
        )
        return ProcessorCheckout(session_id=session_id, redirect_url=f"https://checkout.stripe.test/{session_id}")

    def mark_paid(self, session_id: str, payment_intent_ref: Optional[str] = None) -> None:
        self.sessions[session_id] = dataclasses.replace(
            self.sessions[session_id],
            status="complete",
            payment_status="paid",
            payment_intent_ref=payment_intent_ref or f"pi_{session_id}",
        )

    async def retrieve_checkout_session(self, session_id: str) -> ProcessorSession:
        self.retrieve_calls += 1
        await asyncio.sleep(0)
        if self.retrieve_error is not None:
            raise self.retrieve_error
        if session_id not in self.sessions:
            raise CheckoutSessionNotFoundError(f"Checkout session {session_id} not found")
        return self.sessions[session_id]

    async def create_transfer(
        self,
        *,
        amount_minor,
        currency,
        destination,
        idempotency_key,
        description,
        metadata,
    ) -> ProcessorTransfer:
        if self.transfer_error is not None:
            raise self.transfer_error
        # Misma idempotency key, misma transferencia
        for existing in self.transfers:
            if existing["idempotency_key"] == idempotency_key:
                return ProcessorTransfer(transfer_id=existing["transfer_id"], pending=self.transfer_pending)
        transfer_id = f"tr_test_{len(self.transfers) + 1}"
        self.transfers.append(
            dict(
                transfer_id=transfer_id,
                amount_minor=amount_minor,
                currency=currency,
                destination=destination,
                idempotency_key=idempotency_key,
                description=description,
                metadata=dict(metadata),
            )
        )
        return ProcessorTransfer(transfer_id=transfer_id, pending=self.transfer_pending)


class RecordingSink:
    """Sink que guarda cada notificación; puede fallar para ciertos destinatarios."""

    def __init__(self, fail_targets: Tuple[NotificationTarget, ...] = ()):
        self.messages: List[Tuple[NotificationTarget, Dict[str, Any]]] = []
        self.fail_targets = set(fail_targets)

    async def notify(self, target: NotificationTarget, payload) -> None:
        await asyncio.sleep(0)
        if target in self.fail_targets:
            raise httpx.ConnectError("notification webhook unreachable")
        self.messages.append((target, dict(payload)))

    def targets(self) -> List[NotificationTarget]:
        return [target for target, _ in self.messages]


class FixedRate:
    """Tipo de cambio fijo (sin red)."""

    def __init__(self, rate: str = "5.6"):
        self.rate = Decimal(rate)
        self.calls = 0

    async def get_rate(self, base: str = "USD", quote: str = "BRL") -> Decimal:
        self.calls += 1
        return self.rate


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def rates() -> FixedRate:
    return FixedRate()


@pytest.fixture
def processor_unavailable() -> PaymentProcessorError:
    return PaymentProcessorError("Stripe error: connection reset")


@pytest.fixture
def builder(processor, rates, payments_settings) -> CheckoutRequestBuilder:
    return CheckoutRequestBuilder(processor=processor, exchange_rates=rates, settings=payments_settings)


@pytest.fixture
def verifier(processor, sink, payments_settings) -> SettlementVerifier:
    return SettlementVerifier(
        processor=processor,
        fanout=NotificationFanout(sink=sink, settings=payments_settings),
        settings=payments_settings,
    )


# -----------------------------------------------------------------------------
# 4) Datos de prueba
# -----------------------------------------------------------------------------
class Seeder:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def student(self, user_id: str = "user-1", **kw) -> StudentProfile:
        kw.setdefault("email", f"{user_id}@students.test")
        kw.setdefault("full_name", f"Student {user_id}")
        return await self._save(StudentProfile(user_id=user_id, **kw))

    async def package(self, user_id: str, **kw) -> UserFeeOverride:
        return await self._save(UserFeeOverride(user_id=user_id, **kw))

    async def university(self, **kw) -> University:
        kw.setdefault("name", "Lakeside University")
        kw.setdefault("contact_email", "admissions@lakeside.test")
        return await self._save(University(**kw))

    async def scholarship(self, university_id: Optional[int] = None, **kw) -> Scholarship:
        kw.setdefault("title", "STEM Excellence")
        return await self._save(Scholarship(university_id=university_id, **kw))

    async def application(self, student_id: str, scholarship_id: int, **kw) -> ScholarshipApplication:
        return await self._save(ScholarshipApplication(student_id=student_id, scholarship_id=scholarship_id, **kw))

    async def seller(self, referral_code: str = "SELLER1", **kw) -> Seller:
        kw.setdefault("name", "Sam Seller")
        kw.setdefault("email", "seller@partners.test")
        return await self._save(Seller(referral_code=referral_code, **kw))

    async def coupon(self, code: str = "WELCOME10", **kw) -> Coupon:
        kw.setdefault("discount_type", "percentage")
        kw.setdefault("discount_value", Decimal("10"))
        return await self._save(Coupon(code=code, **kw))

    async def referral(self, user_id: str, referrer_id: str = "referrer-1", **kw) -> UsedReferralCode:
        kw.setdefault("affiliate_code", "MATRICULA50")
        kw.setdefault("discount_amount", Decimal("50"))
        return await self._save(UsedReferralCode(user_id=user_id, referrer_id=referrer_id, **kw))

    async def cart_item(self, user_id: str, scholarship_id: int) -> CartItem:
        return await self._save(CartItem(user_id=user_id, scholarship_id=scholarship_id))


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def paid_checkout(db, builder, processor):
    """Crea un checkout con el builder real y lo marca pagado en el procesador."""

    async def _make(
        user_id: str = "u1",
        fee_type: FeeType = FeeType.SELECTION_PROCESS,
        rail: PaymentRail = PaymentRail.CARD,
        payment_intent_ref: Optional[str] = None,
        **kw,
    ) -> str:
        submission = await builder.build_and_submit(db, user_id=user_id, fee_type=fee_type, rail=rail, **kw)
        processor.mark_paid(submission.session_id, payment_intent_ref)
        return submission.session_id

    return _make


@pytest.fixture
def fetch(session_factory):
    """Lecturas con sesión nueva (sin identity map previo)."""

    class _Fetch:
        async def scalar(self, stmt):
            async with session_factory() as s:
                return await s.scalar(stmt)

        async def all(self, stmt):
            async with session_factory() as s:
                return list((await s.scalars(stmt)).all())

    return _Fetch()


# -----------------------------------------------------------------------------
# 5) Auth
# -----------------------------------------------------------------------------
@pytest.fixture
def make_token():
    def _make(user_id: str) -> str:
        return jwt.encode({"sub": user_id}, os.environ["JWT_SECRET_KEY"], algorithm="HS256")
    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: str = "u1") -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _headers


# -----------------------------------------------------------------------------
# 6) App + cliente HTTP
# -----------------------------------------------------------------------------
@pytest.fixture
async def async_client(session_factory, builder, verifier) -> AsyncIterator[httpx.AsyncClient]:
    """
    Cliente httpx contra la app real (lifespan incluido), con la base de datos
    temporal y los dobles de procesador / notificaciones inyectados.
    """
    from scholarpay.main import app
    from scholarpay.modules.billing.routes import get_checkout_builder, get_settlement_verifier
    from scholarpay.shared.database.database import get_async_session

    async def _override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_checkout_builder] = lambda: builder
    app.dependency_overrides[get_settlement_verifier] = lambda: verifier

    async with LifespanManager(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client

    app.dependency_overrides.clear()
