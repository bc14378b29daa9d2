"""
Request lifecycle.

    (none) --create--> PENDING
    PENDING --approve--> APPROVED
    PENDING --deny-----> DENIED
    PENDING --cancel---> CANCELLED

A create first asks the capability policy whether the sender may simply do the
thing; if so the effect is applied and no request row is written. Otherwise a
PENDING row is inserted, guarded by the partial unique index on ``dedup_key``.

Leaving PENDING is always a conditional UPDATE (``WHERE status = 'PENDING'``),
so of two racing decisions only one matches a row; the other gets
``InvalidStateError``. Notifications go out after the state change commits and
are allowed to fail.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.config import settings
from app.core.exceptions import (
    ForbiddenError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
)
from app.core.roles import normalize_instagram_handle, normalize_role
from app.db.base import utc_now
from app.models.enums import (
    AuthLevel,
    Capability,
    NotificationType,
    RequestStatus,
    RequestType,
    ResourceType,
)
from app.models.request import (
    AccountClaimRequest,
    AuthLevelChangeRequest,
    GlobalAccessRequest,
    Request,
    RequestApproval,
    TaggingRequest,
    TeamMemberRequest,
)
from app.models.resource import RoleTag
from app.models.user import User
from app.repositories.resource_repository import ResourceRepository
from app.schemas.requests import (
    AccountClaimPayload,
    AuthLevelChangePayload,
    CreateOutcome,
    GlobalAccessPayload,
    TaggingPayload,
    TeamMemberPayload,
)
from app.services import capability_policy as policy
from app.services.account_merge_service import AccountMergeService
from app.services.approver_resolver import ApproverResolver
from app.services.grant_service import GrantService
from app.services.notification_service import (
    DatabaseNotificationEmitter,
    NotificationEmitter,
    NotificationService,
)
from app.services.principal_service import Identity, PrincipalService

logger = logging.getLogger(__name__)

Payload = Union[
    TaggingPayload,
    TeamMemberPayload,
    AuthLevelChangePayload,
    GlobalAccessPayload,
    AccountClaimPayload,
]


@dataclass
class CreateRequestResult:
    outcome: CreateOutcome
    message: str
    request: Optional[Request] = None


@dataclass
class _DirectGrant:
    message: str


def _key(*parts) -> str:
    return ":".join(str(p).lower() for p in parts)


def _display_name(user: Optional[User]) -> str:
    if user is None:
        return "A user"
    return user.display_name or user.username or user.email or str(user.user_id)


class RequestService:
    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @staticmethod
    async def create_request(
        session: AsyncSession,
        identity: Optional[Identity],
        payload: Payload,
        emitter: Optional[NotificationEmitter] = None,
    ) -> CreateRequestResult:
        sender, principal = await PrincipalService.load(session, identity)
        if principal.is_banned:
            raise ForbiddenError("Banned users cannot submit requests")
        if not principal.account_verified:
            raise ForbiddenError("Please complete account verification first")

        if isinstance(payload, TaggingPayload):
            draft = await RequestService._draft_tagging(session, sender, principal, payload)
        elif isinstance(payload, TeamMemberPayload):
            draft = await RequestService._draft_team_member(session, sender, principal, payload)
        elif isinstance(payload, AuthLevelChangePayload):
            draft = await RequestService._draft_auth_level_change(session, sender, principal, payload)
        elif isinstance(payload, GlobalAccessPayload):
            draft = await RequestService._draft_global_access(session, sender, principal, payload)
        elif isinstance(payload, AccountClaimPayload):
            draft = await RequestService._draft_account_claim(session, sender, principal, payload)
        else:
            raise InvalidRequestError("Unknown request type")

        if isinstance(draft, _DirectGrant):
            await session.commit()
            return CreateRequestResult(outcome=CreateOutcome.DIRECT, message=draft.message)

        request, created = await RequestService._insert_pending(session, draft)
        if not created:
            logger.info(f"Pending {request.type.value} request {request.request_id} already exists")
            return CreateRequestResult(
                outcome=CreateOutcome.ALREADY_PENDING,
                message="Request already submitted",
                request=request,
            )

        await session.commit()
        logger.info(f"Created {request.type.value} request {request.request_id} from {sender.user_id}")

        if settings.NOTIFY_APPROVERS:
            await RequestService._notify_approvers(session, emitter, request, sender)
        return CreateRequestResult(
            outcome=CreateOutcome.CREATED,
            message="Request submitted for approval",
            request=request,
        )

    @staticmethod
    async def _insert_pending(session: AsyncSession, draft: Request) -> tuple:
        """Insert a PENDING row, or return the one already holding its dedup key.

        The conflicting row can leave PENDING between the failed insert and the
        lookup; the insert is then tried once more before giving up.
        """
        await session.flush()
        for _ in range(2):
            try:
                async with session.begin_nested():
                    session.add(draft)
                    await session.flush()
                return draft, True
            except IntegrityError as e:
                conflict = e
                existing = await RequestService._find_pending(session, draft.dedup_key)
                if existing is not None:
                    await session.commit()
                    return existing, False
        logger.warning(f"Could not settle pending request {draft.dedup_key}: {conflict.orig}")
        await session.rollback()
        raise InvalidStateError("The request changed while it was being submitted, please try again")

    @staticmethod
    async def _find_pending(session: AsyncSession, dedup_key: str) -> Optional[Request]:
        stmt = select(Request).where(
            Request.dedup_key == dedup_key,
            Request.status == RequestStatus.PENDING,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def _draft_tagging(session, sender, principal, payload: TaggingPayload):
        context = await ResourceRepository.get_context(session, payload.resource_id)
        if context is None:
            raise NotFoundError("Resource not found")
        resource_type = ResourceType(context.resource_type)
        role = normalize_role(resource_type, payload.role)
        if role is None:
            raise InvalidRequestError(f"Invalid role for {resource_type.value}: {payload.role}")

        if policy.can_act_directly(principal, context, Capability.TAG):
            created = await GrantService.tag_role(session, payload.resource_id, sender.user_id, role)
            return _DirectGrant(f"Tagged as {role}" if created else f"Already tagged as {role}")

        already = await session.scalar(
            select(RoleTag.tag_id).where(
                RoleTag.resource_id == payload.resource_id,
                RoleTag.user_id == sender.user_id,
                RoleTag.role == role,
            )
        )
        if already is not None:
            return _DirectGrant(f"Already tagged as {role}")

        return TaggingRequest(
            sender_id=sender.user_id,
            target_user_id=sender.user_id,
            resource_id=payload.resource_id,
            resource_type=resource_type,
            role=role,
            message=payload.message,
            dedup_key=_key(RequestType.TAGGING.value, sender.user_id, payload.resource_id, role),
        )

    @staticmethod
    async def _draft_team_member(session, sender, principal, payload: TeamMemberPayload):
        context = await ResourceRepository.get_context(session, payload.resource_id)
        if context is None:
            raise NotFoundError("Resource not found")
        if context.creator_id == sender.user_id:
            raise InvalidRequestError("You are the creator and cannot request team membership")
        if sender.user_id in context.team_member_ids:
            return _DirectGrant("Already a team member")

        if policy.can_act_directly(principal, context, Capability.ASSIGN_TEAM):
            await GrantService.add_team_member(session, payload.resource_id, sender.user_id)
            return _DirectGrant("Added as team member")

        return TeamMemberRequest(
            sender_id=sender.user_id,
            target_user_id=sender.user_id,
            resource_id=payload.resource_id,
            resource_type=ResourceType(context.resource_type),
            message=payload.message,
            dedup_key=_key(RequestType.TEAM_MEMBER.value, sender.user_id, payload.resource_id),
        )

    @staticmethod
    async def _draft_auth_level_change(session, sender, principal, payload: AuthLevelChangePayload):
        if payload.requested_level < AuthLevel.BASE_USER or payload.requested_level > AuthLevel.SUPER_ADMIN:
            raise InvalidRequestError("Invalid authorization level")

        target_id = payload.target_user_id or sender.user_id
        target = sender if target_id == sender.user_id else await session.get(User, target_id)
        if target is None:
            raise NotFoundError("Target user not found")

        current_level = int(target.auth_level)
        if payload.requested_level <= current_level:
            raise InvalidRequestError("Requested level must be higher than the current level")

        if policy.can_grant_level_directly(principal, payload.requested_level):
            await GrantService.set_auth_level(session, target_id, payload.requested_level)
            return _DirectGrant("Authorization level updated")

        return AuthLevelChangeRequest(
            sender_id=sender.user_id,
            target_user_id=target_id,
            requested_level=payload.requested_level,
            current_level=current_level,
            message=payload.message,
            dedup_key=_key(RequestType.AUTH_LEVEL_CHANGE.value, sender.user_id, target_id),
        )

    @staticmethod
    async def _draft_global_access(session, sender, principal, payload: GlobalAccessPayload):
        if principal.all_city_access or principal.auth_level >= AuthLevel.ADMIN:
            return _DirectGrant("You already have access to all cities")
        if principal.auth_level < AuthLevel.CREATOR:
            raise InvalidRequestError("Only creators and moderators can request global access")

        return GlobalAccessRequest(
            sender_id=sender.user_id,
            target_user_id=sender.user_id,
            message=payload.message,
            dedup_key=_key(RequestType.GLOBAL_ACCESS.value, sender.user_id),
        )

    @staticmethod
    async def _draft_account_claim(session, sender, principal, payload: AccountClaimPayload):
        handle = normalize_instagram_handle(payload.instagram_handle)
        if not handle:
            raise InvalidRequestError("Instagram handle is required")
        if payload.target_user_id == sender.user_id:
            raise InvalidRequestError("You cannot claim your own profile")

        target = await session.get(User, payload.target_user_id)
        if target is None:
            raise NotFoundError("Profile not found")
        if target.is_claimed:
            raise InvalidRequestError("This profile has already been claimed")
        if normalize_instagram_handle(target.instagram_handle) != handle:
            raise InvalidRequestError("Instagram handle does not match this profile")

        return AccountClaimRequest(
            sender_id=sender.user_id,
            target_user_id=target.user_id,
            instagram_handle=handle,
            tag_count=payload.tag_count,
            wipe_relationships=payload.wipe_relationships,
            message=payload.message,
            dedup_key=_key(RequestType.ACCOUNT_CLAIM.value, sender.user_id, handle),
        )

    # ------------------------------------------------------------------
    # Decide
    # ------------------------------------------------------------------

    @staticmethod
    async def approve(
        session: AsyncSession,
        identity: Optional[Identity],
        request_id: UUID,
        message: Optional[str] = None,
        emitter: Optional[NotificationEmitter] = None,
    ) -> Request:
        approver, principal = await PrincipalService.load(session, identity)
        request = await RequestService._load_request(session, request_id)
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError()
        await RequestService._authorize_decision(session, principal, request)

        if request.type == RequestType.ACCOUNT_CLAIM:
            return await RequestService._approve_account_claim(session, approver, request, message, emitter)

        try:
            await RequestService._transition(session, request, RequestStatus.APPROVED)
            await RequestService._apply_effect(session, request)
            RequestService._record_decision(session, request, approver.user_id, True, message)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"{request.type.value} request {request.request_id} approved by {approver.user_id}")
        await RequestService._notify_decision(session, emitter, request, True, message)
        return request

    @staticmethod
    async def deny(
        session: AsyncSession,
        identity: Optional[Identity],
        request_id: UUID,
        message: Optional[str] = None,
        emitter: Optional[NotificationEmitter] = None,
    ) -> Request:
        approver, principal = await PrincipalService.load(session, identity)
        request = await RequestService._load_request(session, request_id)
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError()
        await RequestService._authorize_decision(session, principal, request)

        try:
            await RequestService._transition(session, request, RequestStatus.DENIED)
            RequestService._record_decision(session, request, approver.user_id, False, message)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"{request.type.value} request {request.request_id} denied by {approver.user_id}")
        await RequestService._notify_decision(session, emitter, request, False, message)
        return request

    @staticmethod
    async def cancel(
        session: AsyncSession,
        identity: Optional[Identity],
        request_id: UUID,
    ) -> Request:
        """Withdraw a pending request. Not a decision, so no approval record."""
        _, principal = await PrincipalService.load(session, identity)
        request = await RequestService._load_request(session, request_id)
        if request.sender_id != principal.user_id:
            raise ForbiddenError("You can only cancel your own requests")
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError("Only pending requests can be cancelled")

        try:
            await RequestService._transition(session, request, RequestStatus.CANCELLED)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        logger.info(f"{request.type.value} request {request.request_id} cancelled by sender")
        return request

    @staticmethod
    async def retry_account_merge(
        session: AsyncSession,
        identity: Optional[Identity],
        request_id: UUID,
    ) -> None:
        """Re-run the merge for a claim that was approved but whose merge failed."""
        _, principal = await PrincipalService.load(session, identity)
        if not policy.can_approve(principal, RequestType.ACCOUNT_CLAIM):
            raise ForbiddenError()
        request = await RequestService._load_request(session, request_id)
        if request.type != RequestType.ACCOUNT_CLAIM:
            raise InvalidRequestError("Only account claims can be merged")
        if request.status != RequestStatus.APPROVED:
            raise InvalidStateError("Only approved claims can be merged")

        await AccountMergeService.execute_merge(
            session,
            source_user_id=request.sender_id,
            target_user_id=request.target_user_id,
            wipe_relationships=bool(request.wipe_relationships),
            target_instagram=request.instagram_handle,
        )

    @staticmethod
    async def get_request(session: AsyncSession, identity: Optional[Identity], request_id: UUID) -> Request:
        """Visible to the sender and to anyone who could decide it."""
        _, principal = await PrincipalService.load(session, identity)
        request = await RequestService._load_request(session, request_id)
        if request.sender_id != principal.user_id:
            await RequestService._authorize_decision(session, principal, request, allow_own=True)
        return request

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _load_request(session: AsyncSession, request_id: UUID) -> Request:
        stmt = (
            select(Request)
            .where(Request.request_id == request_id)
            .execution_options(populate_existing=True)
        )
        request = (await session.execute(stmt)).scalar_one_or_none()
        if request is None:
            raise NotFoundError()
        return request

    @staticmethod
    async def _authorize_decision(session, principal, request: Request, allow_own: bool = False) -> None:
        """Re-derive the approver's capability now, never from anything cached."""
        if not allow_own and request.sender_id == principal.user_id:
            raise ForbiddenError("You cannot review your own request")
        context = None
        if request.type in policy.RESOURCE_REQUEST_CAPABILITY:
            context = await ResourceRepository.get_context(session, request.resource_id)
        if not policy.can_approve(principal, request.type, context):
            raise ForbiddenError("You do not have permission to review this request")

    @staticmethod
    async def _transition(session: AsyncSession, request: Request, new_status: RequestStatus) -> None:
        """Compare-and-swap out of PENDING. Losing the race raises InvalidStateError."""
        now = utc_now()
        stmt = (
            update(Request)
            .where(
                Request.request_id == request.request_id,
                Request.status == RequestStatus.PENDING,
            )
            .values(status=new_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            raise InvalidStateError()
        set_committed_value(request, "status", new_status)
        set_committed_value(request, "updated_at", now)

    @staticmethod
    async def _apply_effect(session: AsyncSession, request: Request) -> None:
        if request.type == RequestType.TAGGING:
            if await ResourceRepository.get_by_id(session, request.resource_id) is None:
                raise InvalidRequestError("The resource no longer exists")
            await GrantService.tag_role(
                session, request.resource_id, request.target_user_id or request.sender_id, request.role
            )
        elif request.type == RequestType.TEAM_MEMBER:
            await GrantService.add_team_member(session, request.resource_id, request.sender_id)
        elif request.type == RequestType.AUTH_LEVEL_CHANGE:
            if request.target_user_id is None:
                raise InvalidRequestError("Target user no longer exists")
            await GrantService.set_auth_level(session, request.target_user_id, request.requested_level)
        elif request.type == RequestType.GLOBAL_ACCESS:
            await GrantService.grant_global_access(session, request.sender_id)
        else:
            raise InvalidRequestError("Unknown request type")

    @staticmethod
    def _record_decision(session, request: Request, approver_id: UUID, approved: bool, message) -> None:
        session.add(
            RequestApproval(
                request_type=request.type,
                request_id=request.request_id,
                approver_id=approver_id,
                approved=approved,
                message=message,
            )
        )

    @staticmethod
    async def _approve_account_claim(session, approver, request: AccountClaimRequest, message, emitter) -> Request:
        # The merge deletes the sender, and with it this request row. The
        # decision and its notification are committed first so they survive.
        source_user_id = request.sender_id
        target_user_id = request.target_user_id
        wipe = bool(request.wipe_relationships)
        handle = request.instagram_handle

        ghost = await PrincipalService.get_user(session, target_user_id) if target_user_id else None
        if ghost is None:
            raise InvalidRequestError("The claimed profile no longer exists")
        if ghost.is_claimed:
            raise InvalidRequestError("This profile has already been claimed")
        if normalize_instagram_handle(ghost.instagram_handle) != normalize_instagram_handle(handle):
            raise InvalidRequestError("Instagram handle does not match this profile")

        try:
            await RequestService._transition(session, request, RequestStatus.APPROVED)
            RequestService._record_decision(session, request, approver.user_id, True, message)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        logger.info(f"Account claim {request.request_id} approved by {approver.user_id}; merging")

        await NotificationService.notify(
            session,
            emitter or DatabaseNotificationEmitter(session),
            [target_user_id],
            NotificationType.REQUEST_APPROVED,
            "Account Claim Approved",
            "Your account claim request was approved and your accounts have been merged.",
            RequestType.ACCOUNT_CLAIM,
            request.request_id,
        )

        await AccountMergeService.execute_merge(
            session,
            source_user_id=source_user_id,
            target_user_id=target_user_id,
            wipe_relationships=wipe,
            target_instagram=handle,
        )
        return request

    @staticmethod
    async def _resource_title(session, resource_id: Optional[UUID]) -> str:
        if resource_id is None:
            return ""
        resource = await ResourceRepository.get_by_id(session, resource_id)
        if resource is None:
            return str(resource_id)
        return resource.title or str(resource_id)

    @staticmethod
    async def _notify_approvers(session, emitter, request: Request, sender: User) -> None:
        try:
            approvers = await ApproverResolver.resolve_approvers(session, request.type, request.resource_id)
        except Exception as e:
            logger.warning(f"Could not resolve approvers for {request.request_id}: {e}")
            return
        approvers.discard(sender.user_id)
        if not approvers:
            return

        name = _display_name(sender)
        if request.type == RequestType.TAGGING:
            title = "New Request"
            text = f'Request for "{request.role}" for {await RequestService._resource_title(session, request.resource_id)}'
        elif request.type == RequestType.TEAM_MEMBER:
            title = "New Team Member Request"
            text = f"{name} wants to join as a team member for {await RequestService._resource_title(session, request.resource_id)}"
        elif request.type == RequestType.AUTH_LEVEL_CHANGE:
            target = await session.get(User, request.target_user_id)
            title = "New Authorization Level Change Request"
            text = (
                f"{name} wants to change {_display_name(target)}'s authorization level "
                f"from {request.current_level} to {request.requested_level}"
            )
        elif request.type == RequestType.GLOBAL_ACCESS:
            title = "New Global Access Request"
            text = f"{name} requested access to all cities"
        else:
            title = "New Account Claim Request"
            text = f"{name} wants to claim the profile @{request.instagram_handle}"

        await NotificationService.notify(
            session,
            emitter or DatabaseNotificationEmitter(session),
            approvers,
            NotificationType.INCOMING_REQUEST,
            title,
            text,
            request.type,
            request.request_id,
        )

    @staticmethod
    async def _notify_decision(session, emitter, request: Request, approved: bool, note: Optional[str]) -> None:
        emitter = emitter or DatabaseNotificationEmitter(session)
        label = request.type.value.replace("_", " ").title()

        if not approved:
            text = f"Your {label.lower()} request was denied"
            if note:
                text = f"{text}. Reviewer note: {note}"
            await NotificationService.notify(
                session, emitter, [request.sender_id], NotificationType.REQUEST_DENIED,
                f"{label} Request Denied", text, request.type, request.request_id,
            )
            return

        if request.type == RequestType.TAGGING:
            title = await RequestService._resource_title(session, request.resource_id)
            await NotificationService.notify(
                session, emitter, [request.sender_id], NotificationType.REQUEST_APPROVED,
                "Request Approved", f'Approved for "{request.role}" for {title}',
                request.type, request.request_id,
            )
        elif request.type == RequestType.TEAM_MEMBER:
            title = await RequestService._resource_title(session, request.resource_id)
            await NotificationService.notify(
                session, emitter, [request.sender_id], NotificationType.TEAM_MEMBER_ADDED,
                "Team Member Request Approved", f"You have been added as a team member for {title}",
                request.type, request.request_id,
            )
        elif request.type == RequestType.AUTH_LEVEL_CHANGE:
            if request.target_user_id and request.target_user_id != request.sender_id:
                await NotificationService.notify(
                    session, emitter, [request.sender_id], NotificationType.REQUEST_APPROVED,
                    "Authorization Level Change Approved",
                    "Your authorization level change request has been approved",
                    request.type, request.request_id,
                )
            await NotificationService.notify(
                session, emitter, [request.target_user_id or request.sender_id],
                NotificationType.AUTH_LEVEL_CHANGED, "Your Authorization Level Changed",
                f"Your authorization level has been changed to {AuthLevel.coerce(request.requested_level).name}",
                request.type, request.request_id,
            )
        else:
            await NotificationService.notify(
                session, emitter, [request.sender_id], NotificationType.REQUEST_APPROVED,
                f"{label} Approved", f"Your {label.lower()} request has been approved",
                request.type, request.request_id,
            )
