"""Serializable numpy array types and numeric helpers shared by processing stages."""

from __future__ import annotations

import base64
import json
from typing import Literal, TypeVar

import numpy
from numpy import floating
from numpy.typing import NDArray
from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator
from scipy.integrate import trapezoid
from typing_extensions import Annotated

MAD_SCALE = 1.4826
"""Scale factor that converts the median absolute deviation into a standard deviation estimate."""


def array_to_json_str(arr: NDArray) -> str:
    """Serialize a numpy array as a JSON string.

    :param arr: The numpy array to serialize
    :return: JSON string with the array `dtype`, `shape` and data encoded in base64 in `base64_bytes`.

    """
    d = {
        "dtype": str(arr.dtype),
        "shape": arr.shape,
        "base64_bytes": base64.b64encode(numpy.ascontiguousarray(arr).tobytes()).decode("utf8"),
    }
    return json.dumps(d)


def json_str_to_array(s: str) -> NDArray:
    """Decode a string generated with :py:func:`array_to_json_str` into a numpy array."""
    d = json.loads(s)
    data = base64.b64decode(bytes(d["base64_bytes"], "utf8"))
    return numpy.frombuffer(data, dtype=d["dtype"]).reshape(d["shape"]).copy()


def validate_array(arr) -> NDArray:
    """Create a float array from serialized strings, sequences or arrays with other dtypes."""
    if isinstance(arr, str):
        arr = json_str_to_array(arr)
    return numpy.asarray(arr, dtype=float)


FloatDtype = TypeVar("FloatDtype", bound=floating)

FloatArray = Annotated[
    NDArray[FloatDtype],
    BeforeValidator(validate_array),
    PlainSerializer(array_to_json_str, return_type=str),
]

FloatArray1D = Annotated[
    NDArray[FloatDtype],
    Literal["N"],
    BeforeValidator(validate_array),
    PlainSerializer(array_to_json_str, return_type=str),
]


def robust_std(x: NDArray) -> float:
    """Estimate the standard deviation using the median absolute deviation.

    :param x: 1D array of values. An empty array yields ``0.0``.

    """
    if x.size == 0:
        return 0.0
    median = numpy.median(x)
    return MAD_SCALE * float(numpy.median(numpy.abs(x - median)))


def weighted_mean(x: NDArray, weights: NDArray) -> float:
    """Compute the weighted mean of `x`, falling back to the plain mean when all weights are zero."""
    total = weights.sum()
    if total > 0.0:
        return float(numpy.dot(x, weights) / total)
    return float(x.mean())


def descend_to_zero(x: NDArray, index: int) -> tuple[int, int]:
    """Find the region around `index` where `x` remains positive.

    :return: the region as slice indices, i.e., the end index is not included.

    """
    start = index
    while start > 0 and x[start - 1] > 0.0:
        start -= 1
    end = index + 1
    while end < x.size and x[end] > 0.0:
        end += 1
    return start, end


def descend_to_minimum(x: NDArray, index: int, lower: int = 0, upper: int | None = None) -> tuple[int, int]:
    """Find the region around `index` where `x` decreases monotonically on both sides.

    The search stops at the first local minimum on each side, before a non-positive value or at the
    `lower` and `upper` limits.

    :return: the region as slice indices, i.e., the end index is not included.

    """
    upper = x.size if upper is None else min(upper, x.size)
    start = index
    while start > lower and 0.0 < x[start - 1] <= x[start]:
        start -= 1
    end = index + 1
    while end < upper and 0.0 < x[end] <= x[end - 1]:
        end += 1
    return start, end


def is_non_decreasing(x: NDArray) -> bool:
    """Check that consecutive values in a 1D array never decrease."""
    return bool(numpy.all(numpy.diff(x) >= 0.0))


def compute_spacing(x: NDArray) -> float:
    """Compute the median distance between consecutive values. Arrays with less than two values yield ``1.0``."""
    if x.size < 2:
        return 1.0
    return float(numpy.median(numpy.diff(x)))


def integrate(y: NDArray, x: NDArray, spacing: float) -> float:
    """Integrate `y` as a function of `x` using the trapezoidal rule.

    A single point is integrated as a rectangle of width `spacing`, so isolated values keep a
    positive area. Negative areas are clipped to zero.

    :param y: the integrand
    :param x: the sample points, with the same size as `y`
    :param spacing: the rectangle width used for single points
    :return: the area under `y`

    """
    if y.size == 0:
        return 0.0
    if y.size == 1:
        return max(0.0, float(y[0]) * spacing)
    return max(0.0, float(trapezoid(y, x)))
