from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for
from sqlalchemy.exc import IntegrityError

from app.sendportal.db import db_session
from app.sendportal.forms import remember_form_errors
from app.sendportal.models import Team, User
from app.sendportal.modules.templates.models import Template
from app.sendportal.modules.templates.service import (
    NAME_TAKEN_MESSAGE,
    clean_template_payload,
    create_template,
    delete_template,
    paginate_templates,
    update_template,
    validate_template_payload,
)
from app.sendportal.tenancy import current_team, login_required, team_query

bp = Blueprint("templates", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _current_team() -> Team:
    team = current_team()
    if team is None:
        raise RuntimeError("No current team")
    return team


def _get_template_or_404(template_id: int) -> Template:
    template = team_query(db_session(), Template).filter(Template.id == template_id).one_or_none()
    if not template:
        abort(404)
    return template


def _name_taken(s, payload: dict, form_url: str):
    # Two submissions can both pass validation; the unique constraint decides.
    s.rollback()
    current_app.logger.info("Template name conflict on commit (name=%s request_id=%s)", payload["name"], getattr(g, "request_id", None))
    remember_form_errors({"name": NAME_TAKEN_MESSAGE}, payload)
    return redirect(form_url)


# ---------- List ----------
@bp.get("")
@login_required
def index():
    s = db_session()

    page = request.args.get("page", 1, type=int) or 1
    if page < 1:
        page = 1
    per_page = current_app.config.get("TEMPLATES_PER_PAGE", 25)

    templates, total = paginate_templates(team_query(s, Template), page, per_page)
    total_pages = max((total + per_page - 1) // per_page, 1)
    if page > total_pages:
        page = total_pages
        templates, total = paginate_templates(team_query(s, Template), page, per_page)
    first_shown = (page - 1) * per_page + 1 if templates else 0
    last_shown = first_shown + len(templates) - 1 if templates else 0

    def build_url(p):
        args = dict(request.args)
        args["page"] = p
        return url_for("sendportal.templates.index", **args)

    return render_template(
        "sendportal/templates/index.html",
        templates=templates,
        page=page,
        total=total,
        total_pages=total_pages,
        first_shown=first_shown,
        last_shown=last_shown,
        build_url=build_url,
    )


# ---------- New ----------
@bp.get("/create")
@login_required
def create():
    return render_template("sendportal/templates/create.html")


@bp.post("")
@login_required
def store():
    s = db_session()
    u = _current_user()
    team = _current_team()

    payload = clean_template_payload(request.form)
    errors = validate_template_payload(s, payload, team.id)
    if errors:
        remember_form_errors(errors, payload)
        return redirect(url_for("sendportal.templates.create"))

    try:
        create_template(s, payload, team, u)
        s.commit()
    except IntegrityError:
        return _name_taken(s, payload, url_for("sendportal.templates.create"))

    flash("Template created.", "success")
    return redirect(url_for("sendportal.templates.index"))


# ---------- Edit ----------
@bp.get("/<int:template_id>/edit")
@login_required
def edit(template_id: int):
    template = _get_template_or_404(template_id)
    return render_template("sendportal/templates/edit.html", template=template)


# HTML forms cannot send PUT; the POST rule shares the endpoint.
# Decorators apply bottom-up, so the PUT rule is registered first and url_for builds it.
@bp.post("/<int:template_id>/edit")
@bp.patch("/<int:template_id>")
@bp.put("/<int:template_id>")
@login_required
def update(template_id: int):
    s = db_session()
    u = _current_user()
    template = _get_template_or_404(template_id)

    payload = clean_template_payload(request.form)
    errors = validate_template_payload(s, payload, template.team_id, template_id=template.id)
    if errors:
        remember_form_errors(errors, payload)
        return redirect(url_for("sendportal.templates.edit", template_id=template.id))

    try:
        update_template(s, template, payload, u)
        s.commit()
    except IntegrityError:
        return _name_taken(s, payload, url_for("sendportal.templates.edit", template_id=template_id))

    flash("Template updated.", "success")
    return redirect(url_for("sendportal.templates.index"))


# ---------- Delete ----------
@bp.post("/<int:template_id>/delete")
@bp.delete("/<int:template_id>")
@login_required
def destroy(template_id: int):
    s = db_session()
    u = _current_user()
    template = _get_template_or_404(template_id)

    delete_template(s, template, u)
    s.commit()

    flash("Template deleted.", "success")
    return redirect(url_for("sendportal.templates.index"))
