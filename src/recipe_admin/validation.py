"""
Request validation and endpoint routing for generation requests.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Tuple

from .errors import RequestValidationError
from .models import (
    CustomListRequest,
    GenerationKind,
    GenerationRequest,
    MenuRequest,
    SingleDishRequest,
    ThemeRequest,
)

GENERATION_ROUTES: Dict[GenerationKind, str] = {
    GenerationKind.SINGLE: "/api/recipes",
    GenerationKind.MENU: "/api/recipes/batch/menu",
    GenerationKind.THEME: "/api/recipes/batch/theme",
    GenerationKind.CUSTOM: "/api/recipes/batch/custom",
}


def validate_request(request: GenerationRequest, theme_counts: Iterable[int]) -> None:
    """
    Check the kind-specific preconditions of a generation request.

    Args:
        request: The request to check
        theme_counts: Batch sizes accepted for themed requests

    Raises:
        RequestValidationError: If a required field is blank or out of range
    """
    if isinstance(request, SingleDishRequest):
        if not request.dish_name.strip():
            raise RequestValidationError("dishName", "A dish name is required.")
    elif isinstance(request, MenuRequest):
        if not request.theme.strip():
            raise RequestValidationError("theme", "A menu theme is required.")
    elif isinstance(request, ThemeRequest):
        if not request.theme.strip():
            raise RequestValidationError("theme", "A theme is required.")
        allowed = sorted(set(theme_counts))
        if request.count not in allowed:
            raise RequestValidationError("count", f"Recipe count must be one of {allowed}.")
    elif isinstance(request, CustomListRequest):
        if not request.non_blank_dishes():
            raise RequestValidationError("dishes", "At least one dish is required.")
    else:
        raise RequestValidationError("kind", f"Unsupported request type: {type(request).__name__}")


def resolve_route(request: GenerationRequest) -> Tuple[str, Dict[str, Any]]:
    """Return the backend path and JSON payload for a validated request."""
    return GENERATION_ROUTES[GenerationKind(request.kind)], request.to_payload()


def expected_recipe_count(request: GenerationRequest, menu_recipe_count: int = 3) -> int:
    """Number of PDFs the backend will produce for `request`."""
    if isinstance(request, MenuRequest):
        return menu_recipe_count
    if isinstance(request, ThemeRequest):
        return request.count
    if isinstance(request, CustomListRequest):
        return len(request.non_blank_dishes())
    return 1
