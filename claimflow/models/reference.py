"""
Reference Data Models.

Clients, payers, delivered services, service codes and authorizations are
owned by other parts of the platform. The lifecycle engine reads them while
validating and submitting claims and never writes them.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Date, Enum, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from claimflow.core.enums import DocumentationStatus, PayerType, RecordStatus
from claimflow.models.base import Base, TimeStampedModel, UUIDModel


class Client(Base, UUIDModel, TimeStampedModel):
    """Service recipient on whose behalf claims are billed."""

    __tablename__ = "clients"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    medicaid_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Payer-facing member identifier",
    )
    status: Mapped[RecordStatus] = mapped_column(
        Enum(RecordStatus),
        default=RecordStatus.ACTIVE,
        nullable=False,
    )

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVE

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.full_name}')>"


class Payer(Base, UUIDModel, TimeStampedModel):
    """Insurer or program that adjudicates claims."""

    __tablename__ = "payers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    payer_type: Mapped[PayerType] = mapped_column(
        Enum(PayerType),
        default=PayerType.MEDICAID,
        nullable=False,
    )
    status: Mapped[RecordStatus] = mapped_column(
        Enum(RecordStatus),
        default=RecordStatus.ACTIVE,
        nullable=False,
    )
    is_electronic: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Payer accepts electronic / clearinghouse submissions",
    )
    timely_filing_days: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Filing window in days; engine default applies when NULL",
    )
    requires_authorization: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="All services billed to this payer need prior authorization",
    )
    clearinghouse_payer_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Payer(id={self.id}, name='{self.name}')>"


class ServiceCode(Base, UUIDModel):
    """Billable procedure / service code with its validity period."""

    __tablename__ = "service_codes"

    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    active_from: Mapped[date] = mapped_column(Date, nullable=False)
    active_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    requires_authorization: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    def is_active_between(self, start: date, end: date) -> bool:
        """True when the code is valid for the whole period."""
        if self.active_from > start:
            return False
        return self.active_to is None or self.active_to >= end

    def __repr__(self) -> str:
        return f"<ServiceCode(code='{self.code}')>"


class Service(Base, UUIDModel, TimeStampedModel):
    """A delivered, documented service that can be billed on a claim."""

    __tablename__ = "services"

    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    service_code: Mapped[str] = mapped_column(String(20), nullable=False)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    units: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Billable amount (units x rate)",
    )
    documentation_status: Mapped[DocumentationStatus] = mapped_column(
        Enum(DocumentationStatus),
        default=DocumentationStatus.COMPLETE,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, code='{self.service_code}', date={self.service_date})>"


class Authorization(Base, UUIDModel, TimeStampedModel):
    """Prior authorization granted by a payer for a client."""

    __tablename__ = "authorizations"

    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    payer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payers.id", ondelete="CASCADE"),
        nullable=False,
    )
    service_code: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="NULL authorizes every service code",
    )
    authorization_number: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[RecordStatus] = mapped_column(
        Enum(RecordStatus),
        default=RecordStatus.ACTIVE,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_authorizations_client_payer", "client_id", "payer_id"),
    )

    def covers(self, start: date, end: date) -> bool:
        return self.start_date <= start and self.end_date >= end

    def __repr__(self) -> str:
        return f"<Authorization(number='{self.authorization_number}')>"
