"""Utility functions for common operations."""

from .io import (
    load_choice_sets_from_json,
    load_diagram,
    load_plan_from_json,
    save_plan_to_json,
    save_result_to_json,
)

__all__ = [
    "load_choice_sets_from_json",
    "load_diagram",
    "load_plan_from_json",
    "save_plan_to_json",
    "save_result_to_json",
]
