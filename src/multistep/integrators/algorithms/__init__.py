"""Explicit multistep step implementations."""

from .adams_bashforth import AdamsBashforthStep, StepResult

__all__ = [
    "AdamsBashforthStep",
    "StepResult",
]
