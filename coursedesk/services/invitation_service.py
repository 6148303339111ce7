"""
Invitation Service — email invitations to join a client.

Resending issues a fresh token, resets the status to ``pending`` and
extends the expiry; the role is kept. Revoking deletes the row.
Email failures never roll back the invitation; callers get ``email_sent``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app

from coursedesk.core.exceptions import ConflictError
from coursedesk.models import db
from coursedesk.models.client import Client, Invitation
from coursedesk.services.client_user_service import DEFAULT_CLIENT_ROLE, _validate_role
from coursedesk.services.email_service import EmailService
from coursedesk.services.jwt_service import generate_invite_token
from coursedesk.services.student_service import normalize_email
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def _expiry() -> datetime:
    days = current_app.config.get("INVITATION_TTL_DAYS", 7)
    return datetime.now(timezone.utc) + timedelta(days=days)


def _payload(invitation: Invitation, email_sent: bool) -> dict:
    return dict(invitation.to_dict(), email_sent=email_sent)


def create_invitation(*, client_id: int, email: str | None, role: str | None = None) -> dict:
    client = get_or_raise(Client, client_id, "Client")
    email = normalize_email(email)
    role = _validate_role(role or DEFAULT_CLIENT_ROLE)

    pending = Invitation.query.filter_by(client_id=client.id, email=email, status="pending").first()
    if pending is not None:
        raise ConflictError(resource="Invitation", field="email", value=email)

    invitation = Invitation(
        client_id=client.id,
        email=email,
        role=role,
        token=generate_invite_token(),
        status="pending",
        invitation_type="client_user",
        expires_at=_expiry(),
    )
    db.session.add(invitation)
    db_commit_or_raise("Invitation")

    email_sent = EmailService.send_invitation(invitation, client.name)
    logger.info("Invitation created: id=%s client=%s email=%s sent=%s",
                invitation.id, client.id, email, email_sent,
                extra={"client_id": client.id})
    return _payload(invitation, email_sent)


def resend_invitation(invitation_id: int) -> dict:
    invitation = get_or_raise(Invitation, invitation_id, "Invitation")
    invitation.token = generate_invite_token()
    invitation.status = "pending"
    invitation.expires_at = _expiry()
    db_commit_or_raise("Invitation")

    email_sent = EmailService.send_invitation(invitation, invitation.client.name)
    logger.info("Invitation resent: id=%s sent=%s", invitation.id, email_sent,
                extra={"client_id": invitation.client_id})
    return _payload(invitation, email_sent)


def revoke_invitation(invitation_id: int):
    invitation = get_or_raise(Invitation, invitation_id, "Invitation")
    client_id = invitation.client_id
    db.session.delete(invitation)
    db_commit_or_raise("Invitation")
    logger.info("Invitation revoked: id=%s", invitation_id, extra={"client_id": client_id})


def list_invitations(client_id: int, status: str | None = None) -> list[dict]:
    get_or_raise(Client, client_id, "Client")
    query = Invitation.query.filter_by(client_id=client_id)
    if status:
        query = query.filter(Invitation.status == status)
    now = datetime.now(timezone.utc)
    result = []
    for inv in query.order_by(Invitation.created_at.desc()).all():
        data = inv.to_dict()
        expires = inv.expires_at
        if expires is not None and expires.tzinfo is None:
            # SQLite drops tzinfo
            expires = expires.replace(tzinfo=timezone.utc)
        if inv.status == "pending" and expires is not None and expires < now:
            data["status"] = "expired"
        result.append(data)
    return result
