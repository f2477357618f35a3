from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from app.sendportal.audit import record_event
from app.sendportal.modules.templates.models import NAME_MAX_LENGTH, Template

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.sendportal.models import Team, User

logger = logging.getLogger(__name__)

NAME_TAKEN_MESSAGE = "The name has already been taken."


def clean_template_payload(form) -> dict:
    """Pull name/content out of submitted form data, trimmed."""
    return {
        "name": (form.get("name") or "").strip(),
        "content": (form.get("content") or "").strip(),
    }


def validate_template_payload(
    s: "Session",
    payload: dict,
    team_id: int,
    template_id: int | None = None,
) -> dict[str, str]:
    """
    Validate template creation/update payload. Returns field -> message for each
    failing field; empty when the payload is valid.
    """
    errors: dict[str, str] = {}
    name = payload.get("name") or ""
    content = payload.get("content") or ""

    if not name:
        errors["name"] = "The name field is required."
    elif len(name) > NAME_MAX_LENGTH:
        errors["name"] = f"The name may not be greater than {NAME_MAX_LENGTH} characters."
    else:
        q = s.query(Template.id).filter(Template.team_id == team_id, Template.name == name)
        if template_id is not None:
            q = q.filter(Template.id != template_id)
        if q.first() is not None:
            errors["name"] = NAME_TAKEN_MESSAGE

    if not content:
        errors["content"] = "The content field is required."
    return errors


def paginate_templates(q: "Query[Template]", page: int, per_page: int) -> tuple[list[Template], int]:
    """Return one page of templates ordered by name, plus the total count."""
    total = q.count()
    items = q.order_by(Template.name.asc(), Template.id.asc()).offset((page - 1) * per_page).limit(per_page).all()
    return items, total


def create_template(s: "Session", payload: dict, team: "Team", user: "User") -> Template:
    """Create a template owned by `team`."""
    now = datetime.utcnow()
    template = Template(
        team_id=team.id,
        name=payload["name"],
        content=payload["content"],
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(template)
    s.flush()

    record_event(
        s,
        actor=user,
        action="template.create",
        entity_type="Template",
        entity_id=str(template.id),
        metadata={"name": template.name, "team_id": team.id},
    )
    logger.info("Template created id=%s team_id=%s user_id=%s", template.id, team.id, user.id)
    return template


def update_template(s: "Session", template: Template, payload: dict, user: "User") -> Template:
    """Overwrite name and content; team ownership never changes."""
    changes = {}

    new_name = payload["name"]
    if new_name != template.name:
        changes["name"] = {"old": template.name, "new": new_name}
        template.name = new_name

    new_content = payload["content"]
    if new_content != template.content:
        # content can be large; only note that it changed
        changes["content"] = {"changed": True}
        template.content = new_content

    template.updated_at = datetime.utcnow()
    template.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="template.edit",
        entity_type="Template",
        entity_id=str(template.id),
        metadata={"name": template.name, "changes": changes},
    )
    logger.info("Template updated id=%s fields=%s user_id=%s", template.id, sorted(changes), user.id)
    return template


def delete_template(s: "Session", template: Template, user: "User") -> None:
    """Hard-delete a template."""
    template_id = template.id
    record_event(
        s,
        actor=user,
        action="template.delete",
        entity_type="Template",
        entity_id=str(template_id),
        metadata={"name": template.name, "team_id": template.team_id},
    )
    s.delete(template)
    logger.info("Template deleted id=%s user_id=%s", template_id, user.id)
