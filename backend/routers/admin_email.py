import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from csrf import require_csrf
from database import get_db
from email_bulk import available_tags
from email_templates import BUILTIN_TEMPLATES, UnknownTemplateError, render_builtin_template
from email_workflows import send_and_log, send_bulk, send_welcome_email
from emailer import EmailDeliveryError
from models import EmailLog, Entry, NotificationTemplate, TemplateCategory, User
from rate_limit import rate_limit
from schemas import (
    BulkEmailRequest,
    CustomEmailRequest,
    EmailLogResponse,
    NotificationTemplateCreate,
    NotificationTemplateResponse,
    NotificationTemplateUpdate,
    TemplateCategoryEnum,
    WelcomeEmailRequest,
)
from security import require_admin
from site_settings import site_title
from utils import log_admin_action

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_csrf)])


def _get_template(db: Session, template_id: int) -> NotificationTemplate:
    template = db.query(NotificationTemplate).filter(NotificationTemplate.id == template_id).first()
    if not template:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return template


@router.get("/admin/notification-templates", response_model=List[NotificationTemplateResponse])
def list_templates(
    category: Optional[TemplateCategoryEnum] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(NotificationTemplate)
    if category:
        query = query.filter(NotificationTemplate.category == TemplateCategory(category.value))
    return query.order_by(NotificationTemplate.created_at.desc(), NotificationTemplate.id.desc()).all()


@router.get("/admin/notification-templates/tags")
def list_template_tags(admin: User = Depends(require_admin)):
    return {"tags": list(available_tags()), "builtin_templates": sorted(BUILTIN_TEMPLATES)}


@router.post("/admin/notification-templates", response_model=NotificationTemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: NotificationTemplateCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = NotificationTemplate(
        name=payload.name,
        description=payload.description,
        subject=payload.subject,
        body=payload.body,
        category=TemplateCategory(payload.category.value),
        is_active=payload.is_active,
        created_by=admin.id,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    log_admin_action(db, admin, "Create notification template", request.method, request.url.path, {"template_id": template.id})
    return template


@router.put("/admin/notification-templates/{template_id}", response_model=NotificationTemplateResponse)
def update_template(
    template_id: int,
    payload: NotificationTemplateUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_template(db, template_id)
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("category") is not None:
        updates["category"] = TemplateCategory(updates["category"].value)
    for field, value in updates.items():
        if value is not None or field == "description":
            setattr(template, field, value)
    db.commit()
    db.refresh(template)
    log_admin_action(
        db, admin, "Update notification template", request.method, request.url.path,
        {"template_id": template.id, "fields": sorted(updates)},
    )
    return template


@router.delete("/admin/notification-templates/{template_id}")
def delete_template(
    template_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_template(db, template_id)
    db.delete(template)
    db.commit()
    log_admin_action(db, admin, "Delete notification template", request.method, request.url.path, {"template_id": template_id})
    return {"status": "deleted"}


@router.post("/admin/send-custom-email")
def send_custom_email(
    payload: CustomEmailRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    _limit=Depends(rate_limit("email")),
):
    try:
        html = render_builtin_template(payload.template_id, payload.data)
    except UnknownTemplateError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown template: {payload.template_id}")

    result = send_and_log(db, payload.to, payload.subject, html, entry_id=payload.entry_id, sent_by=admin.id)
    log_admin_action(
        db, admin, "Send custom email", request.method, request.url.path,
        {"to": payload.to, "template_id": payload.template_id, "status": result["status"]},
    )
    if result["status"] != "sent":
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to send email")
    return result


@router.post("/admin/send-emails")
def send_bulk_emails(
    payload: BulkEmailRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    _limit=Depends(rate_limit("email")),
):
    subject = payload.subject
    body = payload.body
    if payload.template_id is not None:
        template = _get_template(db, payload.template_id)
        if not template.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Template is inactive")
        subject = subject or template.subject
        body = body or template.body
    if not subject or not body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Subject and body are required")

    entries = db.query(Entry).filter(Entry.id.in_(payload.entry_ids)).order_by(Entry.id.asc()).all()
    if not entries:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No entries found")

    summary = send_bulk(db, entries, subject, body, sent_by=admin.id, site_title=site_title(db))
    log_admin_action(
        db, admin, "Send bulk email", request.method, request.url.path,
        {
            "entry_ids": payload.entry_ids,
            "template_id": payload.template_id,
            "sent": summary["sent"],
            "failed": summary["failed"],
        },
    )
    return summary


@router.post("/admin/send-welcome-email")
def send_welcome(
    payload: WelcomeEmailRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    _limit=Depends(rate_limit("email")),
):
    user = db.query(User).filter(User.id == payload.user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    try:
        send_welcome_email(db, user)
    except EmailDeliveryError as exc:
        logger.error("Welcome email to user %s failed: %s", user.id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to send welcome email") from exc
    log_admin_action(db, admin, "Send welcome email", request.method, request.url.path, {"user_id": user.id})
    return {"status": "sent", "email": user.email}


@router.get("/admin/email-logs", response_model=List[EmailLogResponse])
def list_email_logs(
    entry_id: Optional[int] = None,
    limit: int = 100,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(EmailLog)
    if entry_id is not None:
        query = query.filter(EmailLog.entry_id == entry_id)
    return query.order_by(EmailLog.sent_at.desc(), EmailLog.id.desc()).limit(min(max(limit, 1), 500)).all()
