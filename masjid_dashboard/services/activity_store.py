"""
Persistent event store for activity logs.
Four primitive operations (insert / find / count / delete_many) plus the two
aggregates the stats endpoint needs. Filters are plain SQLAlchemy clauses.
"""
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import ColumnElement, delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from masjid_dashboard.models import ActivityLog


@dataclass(frozen=True)
class ActivityFilters:
    user: str | None = None     # case-insensitive substring
    role: str | None = None     # exact
    action: str | None = None   # case-insensitive substring

    def clauses(self) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if self.user:
            clauses.append(user_matches(self.user))
        if self.role:
            clauses.append(ActivityLog.role == self.role)
        if self.action:
            clauses.append(action_matches(self.action))
        return clauses


def user_matches(fragment: str) -> ColumnElement[bool]:
    return ActivityLog.user.icontains(fragment, autoescape=True)


def action_matches(fragment: str) -> ColumnElement[bool]:
    return ActivityLog.action.icontains(fragment, autoescape=True)


class ActivityStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def insert(self, entry: ActivityLog) -> ActivityLog:
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def find(
        self,
        clauses: Sequence[ColumnElement[bool]] = (),
        limit: int | None = None,
        skip: int = 0,
    ) -> list[ActivityLog]:
        q = (
            select(ActivityLog)
            .where(*clauses)
            .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
            .offset(skip)
        )
        if limit is not None:
            q = q.limit(limit)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def count(self, clauses: Sequence[ColumnElement[bool]] = ()) -> int:
        result = await self.db.execute(
            select(func.count(ActivityLog.id)).where(*clauses)
        )
        return result.scalar_one()

    async def delete_many(self, clauses: Sequence[ColumnElement[bool]] = ()) -> int:
        result = await self.db.execute(delete(ActivityLog).where(*clauses))
        await self.db.commit()
        return result.rowcount

    async def role_counts(self) -> dict[str, int]:
        result = await self.db.execute(
            select(ActivityLog.role, func.count()).group_by(ActivityLog.role)
        )
        return {row[0]: row[1] for row in result.all()}

    async def unique_user_count(self) -> int:
        result = await self.db.execute(select(func.count(distinct(ActivityLog.user))))
        return result.scalar_one()
