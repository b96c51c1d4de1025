"""
Operators - executors over one control surface each (screen, input, browser).
"""

from ..registry import Registry
from .base import BaseOperator, Capability, ParameterSpec
from .browser import BrowserOperator
from .input import InputBackend, InputOperator
from .screen import CaptureStrategy, ScreenOperator

OPERATORS: Registry[BaseOperator] = Registry("operator")
OPERATORS.register(ScreenOperator.operator_name, ScreenOperator)
OPERATORS.register(InputOperator.operator_name, InputOperator)
OPERATORS.register(BrowserOperator.operator_name, BrowserOperator)


def create_operator(name: str) -> BaseOperator:
    """Create an operator by name ('screen', 'input' or 'browser')."""
    return OPERATORS.create(name)


__all__ = [
    "BaseOperator",
    "Capability",
    "ParameterSpec",
    "ScreenOperator",
    "CaptureStrategy",
    "InputOperator",
    "InputBackend",
    "BrowserOperator",
    "OPERATORS",
    "create_operator",
]
