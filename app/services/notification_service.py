#app/services/notification_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.notification import Notification
from app.schemas.contracts import ContractState

logger = logging.getLogger(__name__)


class NotificationType:
    KYC = "kyc"
    DOCUMENT = "document"
    TRANSACTION = "transaction"
    SYSTEM = "system"
    AGREEMENT = "agreement"
    USER = "user"
    USER_COMPANY = "user_company"

    ALL = frozenset({KYC, DOCUMENT, TRANSACTION, SYSTEM, AGREEMENT, USER, USER_COMPANY})


def normalize_type(kind: Optional[str]) -> str:
    return kind if kind in NotificationType.ALL else NotificationType.SYSTEM


class NotificationService:
    def notify(
        self,
        db: Session,
        *,
        recipient: str,
        executor: str,
        kind: str,
        title: str,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        row = Notification(
            user_id=recipient.lower(),
            executor_id=executor or "system",
            type=normalize_type(kind),
            title=title,
            message=message,
            read=False,
            extra_json=extra or {},
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    def list_for_user(self, db: Session, user_id: str) -> List[Notification]:
        return (
            db.execute(
                select(Notification)
                .where(Notification.user_id == user_id.lower())
                .order_by(Notification.created_at.asc())
            )
            .scalars()
            .all()
        )


# ─────────────────────────────────────────────
# FAN-OUT
# ─────────────────────────────────────────────

def _unique_lower(addresses: Iterable[Optional[str]], *, exclude: Optional[str] = None) -> List[str]:
    skip = exclude.lower() if exclude else None
    out: List[str] = []
    for a in addresses:
        if not a:
            continue
        key = a.lower()
        if key == skip or key in out:
            continue
        out.append(key)
    return out


def contract_participants(state: ContractState) -> List[str]:
    return _unique_lower([state.exporter, state.importer, *state.logistics])


def _send_each(
    db: Session,
    notifier: NotificationService,
    recipients: Sequence[str],
    *,
    executor: str,
    kind: str,
    title: str,
    message: str,
    extra: Dict[str, Any],
) -> int:
    sent = 0
    for recipient in recipients:
        try:
            notifier.notify(
                db,
                recipient=recipient,
                executor=executor,
                kind=kind,
                title=title,
                message=message,
                extra=extra,
            )
            sent += 1
        except Exception:
            # delivery is best-effort; the triggering action is already committed
            logger.exception("[notify] failed recipient=%s title=%s", recipient, title)
            db.rollback()
    return sent


def notify_with_admins(
    db: Session,
    notifier: NotificationService,
    *,
    executor: str,
    admins: Sequence[str],
    kind: str,
    title: str,
    message: str,
    extra: Dict[str, Any],
) -> int:
    recipients = _unique_lower(admins, exclude=executor)
    return _send_each(db, notifier, recipients, executor=executor, kind=kind, title=title, message=message, extra=extra)


def notify_users(
    db: Session,
    notifier: NotificationService,
    *,
    executor: str,
    recipients: Sequence[str],
    kind: str,
    title: str,
    message: str,
    extra: Dict[str, Any],
) -> int:
    users = _unique_lower(recipients, exclude=executor)
    return _send_each(db, notifier, users, executor=executor, kind=kind, title=title, message=message, extra=extra)
