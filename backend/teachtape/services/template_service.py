# backend/teachtape/services/template_service.py
"""Jinja2 rendering for transactional emails."""

from datetime import datetime, timezone
from functools import lru_cache
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateNotFound

from ..core.config import settings
from ..core.constants import BRAND_NAME
from ..core.exceptions import ServiceException

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


@lru_cache(maxsize=1)
def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(TEMPLATE_DIR),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["format_datetime"] = format_datetime
    return env


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.strftime("%b %d, %Y at %H:%M UTC")


class TemplateService:
    """Renders templates under ``teachtape/templates`` with common context."""

    def __init__(self) -> None:
        self.env = _environment()

    def common_context(self) -> Dict[str, Any]:
        return {
            "brand_name": BRAND_NAME,
            "frontend_url": settings.frontend_url,
            "current_year": datetime.now(timezone.utc).year,
        }

    def render_template(self, template_name: str, context: Optional[Dict[str, Any]] = None) -> str:
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as exc:
            logger.error("Email template missing: %s", template_name)
            raise ServiceException(f"Template not found: {template_name}") from exc
        return template.render(**{**self.common_context(), **(context or {})})
