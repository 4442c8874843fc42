"""
Shared logging configuration for permissions-gate.
"""

import sys
import structlog
import logging
from typing import Any, Dict, List, Optional
from contextvars import ContextVar, Token

# Context variables for evaluation correlation
evaluation_id_var: ContextVar[Optional[str]] = ContextVar('evaluation_id', default=None)
component_var: ContextVar[Optional[str]] = ContextVar('component', default=None)


def configure_logging(package_name: str = "permissions_gate", log_level: str = "info") -> None:
    """Configure structured logging for the library and its host."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_package_context,
            add_evaluation_context,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    logging.getLogger(package_name).setLevel(getattr(logging, log_level.upper()))


def add_package_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the top-level component (e.g. "engine", "devtools") to log events."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["component_group"] = logger_name.split(".")[1]

    return event_dict


def add_evaluation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add evaluation correlation context to log events."""
    evaluation_id = evaluation_id_var.get()
    if evaluation_id:
        event_dict.setdefault("evaluation_id", evaluation_id)

    component = component_var.get()
    if component:
        event_dict.setdefault("component", component)

    return event_dict


def set_evaluation_context(evaluation_id: Optional[str] = None, component: Optional[str] = None) -> List[Token]:
    """Set evaluation context in logging; returns tokens for reset_context."""
    tokens = []
    if evaluation_id:
        tokens.append(evaluation_id_var.set(evaluation_id))
    if component:
        tokens.append(component_var.set(component))
    return tokens


def reset_context(tokens: List[Token]) -> None:
    """Restore the context that was active before set_evaluation_context."""
    for token in reversed(tokens):
        token.var.reset(token)


def clear_context():
    """Clear all context variables."""
    evaluation_id_var.set(None)
    component_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
