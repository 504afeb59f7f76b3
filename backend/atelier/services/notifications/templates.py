"""
Notification template engine with Jinja2 for Telegram message rendering.

Templates live under ``atelier/templates/notifications/<audience>/`` as
HTML fragments using the subset of tags Telegram accepts in HTML parse
mode. Autoescaping is on so customer-supplied text (names, reasons)
cannot inject markup.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from atelier.core.exceptions import AtelierError
from atelier.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "notifications"


class TemplateRenderError(AtelierError):
    """Raised when a notification template is missing or fails to render."""

    pass


def format_currency(value: Union[Decimal, int, float, None], currency_code: str = "ETB") -> str:
    """Format an amount as ``1,400 ETB``; cents are shown only when present."""
    amount = Decimal(str(value or 0))
    if amount == amount.to_integral_value():
        return f"{amount:,.0f} {currency_code}"
    return f"{amount:,.2f} {currency_code}"


def format_date(value: Union[date, datetime, str, None]) -> str:
    """Format a date as ``Sat Oct 24 2026``."""
    if value is None:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value.strftime("%a %b %d %Y")


def humanize(value: Any) -> str:
    """Turn ``custom_event_dress`` into ``custom event dress``."""
    if isinstance(value, Enum):
        value = value.value
    return str(value or "").replace("_", " ")


class TemplateEngine:
    """
    Renders customer and operator notification messages.
    """

    def __init__(self, template_dir: Optional[Union[str, Path]] = None):
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = format_currency
        self.env.filters["date"] = format_date
        self.env.filters["humanize"] = humanize

    def render(self, audience: str, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render one message.

        Args:
            audience: ``customer`` or ``operator``
            template_name: Template file name without extension
            context: Template variables

        Raises:
            TemplateRenderError: If the template is missing or rendering fails
        """
        template_path = f"{audience}/{template_name}.html"
        try:
            template = self.env.get_template(template_path)
            return template.render(**context).strip()
        except TemplateNotFound as e:
            logger.error("Notification template not found", template=template_path)
            raise TemplateRenderError(
                f"Notification template not found: {template_path}",
                template=template_path,
            ) from e
        except TemplateError as e:
            logger.error(
                "Notification template rendering failed",
                template=template_path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TemplateRenderError(
                f"Failed to render notification template: {e}",
                template=template_path,
            ) from e
