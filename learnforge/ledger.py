"""
Study-Debt Ledger
=================

Study debt is time a learner owes after skipping, failing, or going
inactive. Debts are created by the other enforcement components and
drained by `pay_study_debt`, which allocates studied minutes to the
highest-priority, oldest debt first.

Usage:
    ledger = StudyDebtLedger(session, config)

    await ledger.add_study_debt("user-1", DebtSource.SELF_ADDED, "Extra review", 30)
    paid_off = await ledger.pay_study_debt("user-1", minutes_studied=45)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.config import EnforcementConfig
from learnforge.db.connection import transaction
from learnforge.db.models import StudyDebt, utc_now
from learnforge.policy import (
    DebtSource,
    DebtStatus,
    OPEN_DEBT_STATUSES,
    debt_priority,
    progress_percent,
)

logger = logging.getLogger(__name__)


@dataclass
class DebtSummary:
    """Outstanding minutes across open debts."""
    total: int
    items: int

    def to_dict(self) -> dict:
        return {"total": self.total, "items": self.items}


class StudyDebtLedger:
    """Creates, lists and pays down study debt."""

    def __init__(
        self,
        session: AsyncSession,
        config: EnforcementConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.config = config
        self.clock = clock

    async def stage_debt(
        self,
        user_id: str,
        source: DebtSource,
        title: str,
        debt_minutes: int,
        subject: Optional[str] = None,
        description: Optional[str] = None,
    ) -> StudyDebt:
        """Add a debt to the current transaction without committing."""
        if debt_minutes <= 0:
            raise ValueError(f"debt_minutes must be positive, got {debt_minutes}")

        now = self.clock()
        debt = StudyDebt(
            user_id=user_id,
            source=source.value,
            status=DebtStatus.QUEUED.value,
            title=title,
            description=description,
            debt_minutes=debt_minutes,
            paid_minutes=0,
            progress_percent=0.0,
            subject=subject,
            priority=debt_priority(source),
            expires_at=now + timedelta(days=self.config.debt_expiry_days),
            created_at=now,
        )
        self.session.add(debt)
        await self.session.flush()

        logger.info("Study debt added for %s: %s (%d min)", user_id, title, debt_minutes)
        return debt

    async def add_study_debt(
        self,
        user_id: str,
        source: DebtSource,
        title: str,
        debt_minutes: int,
        subject: Optional[str] = None,
        description: Optional[str] = None,
    ) -> StudyDebt:
        """Create a debt and commit it."""
        async with transaction(self.session):
            return await self.stage_debt(user_id, source, title, debt_minutes, subject, description)

    async def _open_debts(self, user_id: str) -> list[StudyDebt]:
        result = await self.session.execute(
            select(StudyDebt)
            .where(StudyDebt.user_id == user_id, StudyDebt.status.in_(OPEN_DEBT_STATUSES))
            .order_by(StudyDebt.priority.asc(), StudyDebt.created_at.asc(), StudyDebt.id.asc())
        )
        return list(result.scalars().all())

    async def get_study_debt(self, user_id: str) -> DebtSummary:
        debts = await self._open_debts(user_id)
        return DebtSummary(
            total=sum(d.outstanding_minutes for d in debts),
            items=len(debts),
        )

    async def list_debts(self, user_id: str, include_completed: bool = False) -> list[StudyDebt]:
        """Debts in payment order; completed ones trail when included."""
        if not include_completed:
            return await self._open_debts(user_id)

        result = await self.session.execute(
            select(StudyDebt)
            .where(StudyDebt.user_id == user_id)
            .order_by(
                (StudyDebt.status == DebtStatus.COMPLETED.value).asc(),
                StudyDebt.priority.asc(),
                StudyDebt.created_at.asc(),
                StudyDebt.id.asc(),
            )
        )
        return list(result.scalars().all())

    async def pay_study_debt(self, user_id: str, minutes_studied: int) -> int:
        """
        Allocate studied minutes across open debts.

        Debts are drained in (priority, created_at) order: each one is paid
        as far as the remaining minutes allow before the next is touched.
        All updates commit together.

        Returns:
            Number of debts fully paid off by this payment
        """
        if minutes_studied <= 0:
            return 0

        async with transaction(self.session):
            debts = await self._open_debts(user_id)
            now = self.clock()
            remaining = minutes_studied
            debts_paid = 0

            for debt in debts:
                if remaining <= 0:
                    break

                payment = min(remaining, debt.outstanding_minutes)
                debt.paid_minutes += payment
                debt.progress_percent = progress_percent(debt.paid_minutes, debt.debt_minutes)
                if debt.started_at is None:
                    debt.started_at = now

                if debt.paid_minutes >= debt.debt_minutes:
                    debt.status = DebtStatus.COMPLETED.value
                    debt.completed_at = now
                    debts_paid += 1
                else:
                    debt.status = DebtStatus.IN_PROGRESS.value

                remaining -= payment

        logger.info(
            "Paid %d min of study debt for %s (%d debts cleared)",
            minutes_studied - remaining, user_id, debts_paid,
        )
        return debts_paid
