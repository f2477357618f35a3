"""
Parent blueprint for the SendPortal back office.

Feature modules register here so their endpoints read `sendportal.<module>.<action>`.
"""
from flask import Blueprint

from app.sendportal.modules.templates.admin import bp as templates_bp

bp = Blueprint("sendportal", __name__)
bp.register_blueprint(templates_bp, url_prefix="/templates")
