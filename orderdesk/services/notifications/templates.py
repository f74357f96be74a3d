"""
Jinja2 rendering of customer-facing message text.

Templates are plain-text ``.txt`` files under ``orderdesk/templates/messages``.
Undefined variables fail the render instead of printing blanks, and block
tags do not leave stray newlines behind.
"""

from pathlib import Path
from typing import Any, Mapping, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
)

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import OrderDeskError
from orderdesk.core.logging import get_logger
from orderdesk.services.orders.money import format_currency

logger = get_logger(__name__)

MESSAGE_TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "messages"
TEMPLATE_SUFFIX = ".txt"


class TemplateEngineError(OrderDeskError):
    """Raised when a message template cannot be rendered."""

    @property
    def template_name(self) -> Optional[str]:
        return self.context.get("template_name")


class TemplateNotFoundError(TemplateEngineError):
    pass


class TemplateRenderError(TemplateEngineError):
    pass


class TemplateEngine:
    """
    Renders message templates by name.

    Filters:
        currency: Decimal amount as ``R$ 1.234,50`` (symbol from settings)
    """

    def __init__(
        self,
        template_dir: Optional[Union[str, Path]] = None,
        currency_symbol: Optional[str] = None,
        cache_size: int = 50,
    ):
        """
        Args:
            template_dir: Directory holding ``<name>.txt`` templates
            currency_symbol: Prefix for the currency filter
            cache_size: Number of compiled templates kept by Jinja2
        """
        self.template_dir = Path(template_dir) if template_dir else MESSAGE_TEMPLATE_DIR
        self.currency_symbol = currency_symbol or get_settings().currency_symbol
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            cache_size=cache_size,
        )
        self.env.filters["currency"] = lambda value: format_currency(value, self.currency_symbol)

    def render_message(self, template_name: str, context: Mapping[str, Any]) -> str:
        """
        Render ``<template_name>.txt`` with context.

        Returns:
            Message text with leading and trailing whitespace removed

        Raises:
            TemplateNotFoundError: If no such template exists
            TemplateRenderError: If rendering fails, e.g. on a missing variable
        """
        filename = f"{template_name}{TEMPLATE_SUFFIX}"
        try:
            message = self.env.get_template(filename).render(**context)
        except TemplateNotFound as e:
            raise TemplateNotFoundError(
                f"Message template not found: {template_name}",
                template_name=template_name,
                template_dir=str(self.template_dir),
            ) from e
        except TemplateError as e:
            logger.error(
                "Message template failed to render",
                template_name=template_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TemplateRenderError(
                f"Failed to render message template {template_name}: {e}",
                template_name=template_name,
            ) from e

        return message.strip()


def get_template_engine(template_dir: Optional[Union[str, Path]] = None) -> TemplateEngine:
    """TemplateEngine for the packaged message templates, or template_dir."""
    return TemplateEngine(template_dir=template_dir)
