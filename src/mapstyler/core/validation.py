"""
Input validation helpers for MapStyler.

Provides reusable decorators for validating function inputs such as CRS codes
and non-empty arguments, plus the extent check shared by the pipeline and the
extent calculators.
"""

import inspect
import logging
import math
from functools import wraps
from numbers import Real
from typing import Any, Callable, TypeVar

from .exceptions import CRSError, ValidationError

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def _bound_argument(func: Callable, param_name: str, args: tuple, kwargs: dict) -> Any:
    """Look up a parameter value whether it was passed by position or keyword."""
    if param_name in kwargs:
        return kwargs[param_name]
    try:
        bound = inspect.signature(func).bind_partial(*args, **kwargs)
    except TypeError:
        return None
    return bound.arguments.get(param_name)


def is_valid_extent(extent: Any) -> bool:
    """
    Check whether a value is a usable bounding box.

    A valid extent is a 4-element list/tuple of finite real numbers ordered
    (minx, miny, maxx, maxy) with minx <= maxx and miny <= maxy.

    Args:
        extent: Candidate value (typically ``layer.get("extent")``)

    Returns:
        True if the extent can be used as-is
    """
    if not isinstance(extent, (list, tuple)) or len(extent) != 4:
        return False
    for value in extent:
        if isinstance(value, bool) or not isinstance(value, Real):
            return False
        if not math.isfinite(value):
            return False
    min_x, min_y, max_x, max_y = extent
    return min_x <= max_x and min_y <= max_y


def validate_crs(param_name: str = "crs") -> Callable[[F], F]:
    """
    Decorator to validate CRS (Coordinate Reference System) values.

    Validates that the CRS can be parsed by pyproj.

    Args:
        param_name: Name of the CRS parameter to validate

    Raises:
        CRSError: If CRS is invalid

    Example:
        @validate_crs("source_crs")
        def reproject(x: float, y: float, source_crs: str) -> None:
            pass
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            crs_value = _bound_argument(func, param_name, args, kwargs)

            if crs_value is not None:
                try:
                    from pyproj import CRS as ProjCRS
                    ProjCRS.from_user_input(crs_value)
                except Exception as e:
                    raise CRSError(f"Invalid CRS: {crs_value}. Error: {str(e)}") from e

            return func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


def validate_not_empty(param_name: str) -> Callable[[F], F]:
    """
    Decorator to validate that a parameter is not empty (str, list, dict, etc).

    Args:
        param_name: Name of parameter to validate

    Raises:
        ValidationError: If parameter is empty

    Example:
        @validate_not_empty("url")
        async def fetch_bytes(self, url: str) -> bytes:
            pass
    """
    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                _check_not_empty(func, param_name, args, kwargs)
                return await func(*args, **kwargs)

            return async_wrapper  # type: ignore

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            _check_not_empty(func, param_name, args, kwargs)
            return func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


def _check_not_empty(func: Callable, param_name: str, args: tuple, kwargs: dict) -> None:
    value = _bound_argument(func, param_name, args, kwargs)
    if value is None or len(value) == 0:
        raise ValidationError(f"Parameter '{param_name}' cannot be empty.")
