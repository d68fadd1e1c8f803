# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from enum import Enum
import typing
from typing import Optional, Type, Union, cast

T = typing.TypeVar("T")


class ApiSpecError(Exception):
    pass


class ImagePullPolicy(Enum):
    Never = "Never"
    IfNotPresent = "IfNotPresent"
    Always = "Always"


def typename(type: type) -> str:
    CONTENT_TYPE_NAMES = {"dict": "Map", "str": "String",
                          "int": "Integer", "bool": "Boolean", "list": "List"}
    if type.__name__ not in CONTENT_TYPE_NAMES:
        return type.__name__
    return CONTENT_TYPE_NAMES[type.__name__]


def _dget(d: dict, key: str, what: str, default_value: Optional[T], expected_type: Union[Type[T], tuple]) -> T:
    if default_value is None and key not in d:
        raise ApiSpecError(f"{what}.{key} is mandatory, but is not set")
    value = d.get(key, default_value)
    # An explicit null in the object is the same as not set
    if value is None and default_value is not None:
        value = default_value
    if not isinstance(value, expected_type):
        expected = expected_type if isinstance(expected_type, tuple) else (expected_type,)
        raise ApiSpecError(
            f"{what}.{key} expected to be a {' or '.join(typename(t) for t in expected)} but is {typename(type(value)) if value is not None else 'not set'}")
    return cast(T, value)


def dget_dict(d: dict, key: str, what: str, default_value: Optional[dict] = None) -> dict:
    return _dget(d, key, what, default_value, dict)


def dget_str(d: dict, key: str, what: str, *, default_value: Optional[str] = None) -> str:
    return _dget(d, key, what, default_value, str)


def dget_str_or_int(d: dict, key: str, what: str, *, default_value: Optional[str] = None) -> str:
    """
    Some fields (replicas, port) were historically strings. Accept both, the
    result is always a string.
    """
    return str(_dget(d, key, what, default_value, (str, int)))
