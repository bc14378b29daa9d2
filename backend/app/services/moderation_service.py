from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from app.models.enums import RequestStatus, RequestType
from app.models.request import Request, RequestApproval
from app.repositories.resource_repository import ResourceRepository
from app.schemas.requests import RequestStatsResponse
from app.services import capability_policy as policy
from app.services.principal_service import Identity, PrincipalService


class ModerationService:
    @staticmethod
    async def incoming_requests(
        session: AsyncSession,
        identity: Optional[Identity],
        request_type: Optional[RequestType] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Request], int]:
        """
        PENDING requests the caller could decide right now.

        Capability is evaluated per request against current data, the same
        check approve/deny make, so the queue never shows something the caller
        would be refused on.
        """
        _, principal = await PrincipalService.load(session, identity)

        stmt = select(Request).where(
            Request.status == RequestStatus.PENDING,
            Request.sender_id != principal.user_id,
        )
        if request_type is not None:
            stmt = stmt.where(Request.type == request_type)
        stmt = stmt.order_by(Request.created_at.asc())

        if all(policy.can_approve(principal, t) for t in RequestType):
            # Nothing to filter per row; page in the database.
            total = await session.scalar(select(func.count()).select_from(stmt.subquery()))
            result = await session.execute(stmt.offset(skip).limit(limit))
            return list(result.scalars().all()), (total or 0)

        pending = (await session.execute(stmt)).scalars().all()

        contexts: Dict = {}
        visible = []
        for request in pending:
            context = None
            if request.type in policy.RESOURCE_REQUEST_CAPABILITY:
                if request.resource_id not in contexts:
                    contexts[request.resource_id] = await ResourceRepository.get_context(
                        session, request.resource_id
                    )
                context = contexts[request.resource_id]
            if policy.can_approve(principal, request.type, context):
                visible.append(request)

        return visible[skip:skip + limit], len(visible)

    @staticmethod
    async def outgoing_requests(
        session: AsyncSession,
        identity: Optional[Identity],
        status: Optional[RequestStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Request], int]:
        """Requests the caller has sent, newest first."""
        _, principal = await PrincipalService.load(session, identity)

        query = select(Request).where(Request.sender_id == principal.user_id)
        if status is not None:
            query = query.where(Request.status == status)

        total = await session.scalar(select(func.count()).select_from(query.subquery()))
        query = query.order_by(Request.created_at.desc()).offset(skip).limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all()), (total or 0)

    @staticmethod
    async def get_approvals(session: AsyncSession, request_id) -> List[RequestApproval]:
        stmt = (
            select(RequestApproval)
            .where(RequestApproval.request_id == request_id)
            .order_by(RequestApproval.created_at.asc())
        )
        return list((await session.execute(stmt)).scalars().all())

    @staticmethod
    async def get_stats(session: AsyncSession) -> RequestStatsResponse:
        pending_stmt = select(func.count(Request.request_id)).where(
            Request.status == RequestStatus.PENDING
        )
        pending_count = (await session.execute(pending_stmt)).scalar()

        today_start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        approved_today_stmt = select(func.count(RequestApproval.approval_id)).where(
            and_(
                RequestApproval.approved.is_(True),
                RequestApproval.created_at >= today_start
            )
        )
        approved_today = (await session.execute(approved_today_stmt)).scalar()
        denied_today_stmt = select(func.count(RequestApproval.approval_id)).where(
            and_(
                RequestApproval.approved.is_(False),
                RequestApproval.created_at >= today_start
            )
        )
        denied_today = (await session.execute(denied_today_stmt)).scalar()

        by_type_stmt = (
            select(Request.type, func.count(Request.request_id))
            .where(Request.status == RequestStatus.PENDING)
            .group_by(Request.type)
        )
        pending_by_type = {
            rtype.value: count for rtype, count in (await session.execute(by_type_stmt)).all()
        }
        return RequestStatsResponse(
            pending_count=pending_count or 0,
            approved_today=approved_today or 0,
            denied_today=denied_today or 0,
            pending_by_type=pending_by_type
        )
