# backend/shopdesk/services/template_service.py
"""
Template rendering service for ShopDesk.

Renders the transactional email templates with Jinja2. HTML templates are
autoescaped; plain-text templates and subject lines are not.
"""

from datetime import date, datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import EmailType
from ..utils.money import format_money
from .base import BaseService
from .template_registry import EMAIL_TEMPLATES

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class TemplateService(BaseService):
    """Centralized template rendering using Jinja2."""

    def __init__(self, db: Optional[Session] = None):
        super().__init__(db)

        self.env = Environment(
            loader=FileSystemLoader(TEMPLATE_DIR),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._register_custom_filters()

    def _register_custom_filters(self) -> None:
        def format_date(value: Any, format_str: str = "%B %d, %Y") -> str:
            if isinstance(value, (datetime, date)):
                return value.strftime(format_str)
            return str(value)

        def format_time(value: Any) -> str:
            if isinstance(value, datetime):
                return value.strftime("%I:%M %p").lstrip("0")
            return str(value)

        self.env.filters["money"] = format_money
        self.env.filters["format_date"] = format_date
        self.env.filters["format_time"] = format_time

    def get_common_context(self) -> Dict[str, Any]:
        return {
            "business_name": settings.business_name,
            "current_year": datetime.now().year,
            "support_email": settings.from_email,
        }

    @BaseService.measure_operation("render_template")
    def render_template(self, template_name: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> str:
        """
        Render a template with the given context.

        Raises:
            TemplateNotFound: If template doesn't exist
        """
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound:
            self.logger.error(f"Template not found: {template_name}")
            raise

        full_context = self.get_common_context()
        if context:
            full_context.update(context)
        full_context.update(kwargs)
        return template.render(full_context)

    def render_string(self, template_string: str, context: Optional[Dict[str, Any]] = None) -> str:
        full_context = self.get_common_context()
        if context:
            full_context.update(context)
        return self.env.from_string(template_string).render(full_context)

    @BaseService.measure_operation("render_email")
    def render_email(self, email_type: EmailType, context: Dict[str, Any]) -> Dict[str, str]:
        """Render ``{subject, text, html}`` for one email type."""
        subject_template, text_template, html_template = EMAIL_TEMPLATES[email_type]
        return {
            "subject": self.render_string(subject_template, context).strip(),
            "text": self.render_template(text_template.value, context),
            "html": self.render_template(html_template.value, context),
        }
