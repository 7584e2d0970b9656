"""
Claim Models for the Claim Lifecycle Engine.
Source: Claim lifecycle design, Section 3 - Data Model
Verified: 2026-10-19
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claimflow.core.enums import ClaimStatus, ClaimType, DenialReason, SubmissionMethod
from claimflow.models.base import Base, JSONType, TimeStampedModel, UUIDModel, utcnow

TERMINAL_STATUSES = frozenset({ClaimStatus.PAID, ClaimStatus.VOID, ClaimStatus.FINAL_DENIED})


class HistoryImmutableError(RuntimeError):
    """Raised when code attempts to modify or delete a status history row."""


class Claim(Base, UUIDModel, TimeStampedModel):
    """
    Claim submitted to a payer for reimbursement of delivered services.

    claim_status is mutated only through the lifecycle services; the version
    column guards it against lost updates from concurrent writers.
    """

    __tablename__ = "claims"

    # Claim Identification
    claim_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="Human-readable claim number (e.g., CLM-20240110-00001)",
    )
    external_claim_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Payer / clearinghouse claim ID",
    )

    # References (owned elsewhere)
    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    payer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    original_claim_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("claims.id", ondelete="RESTRICT"),
        nullable=True,
        comment="Original claim for ADJUSTMENT / REPLACEMENT / VOID claims",
    )

    # Classification and Status
    claim_type: Mapped[ClaimType] = mapped_column(
        Enum(ClaimType),
        default=ClaimType.ORIGINAL,
        nullable=False,
    )
    claim_status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus),
        default=ClaimStatus.DRAFT,
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Optimistic lock counter",
    )

    # Amount and Dates
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Billed total; equals the sum of service lines at creation",
    )
    service_start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    service_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    submission_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    submission_method: Mapped[Optional[SubmissionMethod]] = mapped_column(
        Enum(SubmissionMethod),
        nullable=True,
    )
    adjudication_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Denial / Adjudication
    denial_reason: Mapped[Optional[DenialReason]] = mapped_column(
        Enum(DenialReason),
        nullable=True,
    )
    denial_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    adjustment_codes: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Adjustment code -> description",
    )

    # Appeal
    appeal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    appeal_documents: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Supporting document references",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Audit
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships
    service_lines: Mapped[list["ClaimServiceLine"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimServiceLine.service_line_number",
        lazy="selectin",
    )
    status_history: Mapped[list["ClaimStatusHistory"]] = relationship(
        back_populates="claim",
        order_by="ClaimStatusHistory.sequence",
        lazy="raise_on_sql",
        viewonly=True,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_claims_client_payer_dates", "client_id", "payer_id", "service_start_date"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.claim_status in TERMINAL_STATUSES

    @property
    def service_ids(self) -> list[UUID]:
        return [line.service_id for line in self.service_lines]

    def __repr__(self) -> str:
        return f"<Claim(claim_number='{self.claim_number}', status={self.claim_status})>"


class ClaimServiceLine(Base, UUIDModel):
    """Delivered service billed on a claim."""

    __tablename__ = "claim_service_lines"

    claim_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    service_line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    service_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Service code at billing time",
    )
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    billed_units: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    billed_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    claim: Mapped["Claim"] = relationship(back_populates="service_lines")

    __table_args__ = (
        UniqueConstraint("claim_id", "service_line_number", name="uq_claim_service_line_number"),
    )

    def __repr__(self) -> str:
        return f"<ClaimServiceLine(claim_id={self.claim_id}, line={self.service_line_number}, code='{self.service_code}')>"


class ClaimStatusHistory(Base, UUIDModel):
    """
    Append-only status log for a claim.

    One row per transition, including the initial DRAFT row. Rows are never
    updated or deleted; see the mapper guards below.
    """

    __tablename__ = "claim_status_history"

    claim_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("claims.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="1-based position within the claim's history",
    )
    status: Mapped[ClaimStatus] = mapped_column(Enum(ClaimStatus), nullable=False)
    previous_status: Mapped[Optional[ClaimStatus]] = mapped_column(
        Enum(ClaimStatus),
        nullable=True,
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="NULL for system-initiated transitions",
    )

    claim: Mapped["Claim"] = relationship(back_populates="status_history")

    __table_args__ = (
        UniqueConstraint("claim_id", "sequence", name="uq_claim_status_history_sequence"),
        Index("ix_claim_status_history_status_time", "status", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ClaimStatusHistory(claim_id={self.claim_id}, {self.previous_status} -> {self.status})>"


@event.listens_for(ClaimStatusHistory, "before_update")
def _reject_history_update(mapper, connection, target) -> None:  # noqa: ARG001
    raise HistoryImmutableError("Claim status history rows cannot be modified")


@event.listens_for(ClaimStatusHistory, "before_delete")
def _reject_history_delete(mapper, connection, target) -> None:  # noqa: ARG001
    raise HistoryImmutableError("Claim status history rows cannot be deleted")
