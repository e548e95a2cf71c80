"""Type-directed conversion between Python values and plain builtins.

``to_builtins`` lowers a value (dataclasses, enums, containers) to the
``None``/``bool``/``int``/``float``/``str``/``bytes``/``list``/``dict``
subset that JSON and MessagePack can carry.  ``from_builtins`` does the
reverse, guided by the *declared* type, and rejects payloads whose shape
does not match it.

Examples
--------
>>> from dataclasses import dataclass
>>> @dataclass(frozen=True)
... class Point:
...     x: int
...     y: int
>>> to_builtins(Point(1, 2))
{'x': 1, 'y': 2}
>>> from_builtins({"x": 1, "y": 2}, Point)
Point(x=1, y=2)
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
import enum
import types
import typing
from typing import Any, Literal, Union, cast, get_args, get_origin, get_type_hints

from framelink.errors import DecodeError, EncodeError


__all__ = ["from_builtins", "to_builtins"]

_NONE_TYPE = type(None)
_field_types: dict[type, dict[str, Any]] = {}


def to_builtins(value: Any, *, bytes_as_str: bool = False) -> object:
    """Lower *value* to plain builtins.

    Parameters
    ----------
    value : Any
        Value to convert.
    bytes_as_str : bool
        Encode ``bytes`` as base64 text (for formats without a binary type).

    Raises
    ------
    EncodeError
        If the value contains a type with no builtin representation.
    """
    match value:
        case enum.Enum():
            return to_builtins(value.value, bytes_as_str=bytes_as_str)
        case None | bool() | int() | float() | str():
            return value
        case bytes() | bytearray() | memoryview():
            raw = bytes(value)
            return base64.b64encode(raw).decode("ascii") if bytes_as_str else raw
        case _ if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return {
                f.name: to_builtins(getattr(value, f.name), bytes_as_str=bytes_as_str)
                for f in dataclasses.fields(value)
            }
        case dict():
            return {
                _map_key(to_builtins(k, bytes_as_str=bytes_as_str)): to_builtins(
                    v, bytes_as_str=bytes_as_str
                )
                for k, v in cast(dict[object, object], value).items()
            }
        case list() | tuple() | set() | frozenset():
            return [
                to_builtins(item, bytes_as_str=bytes_as_str)
                for item in cast(typing.Iterable[object], value)
            ]
        case _:
            msg = f"Cannot encode value of type {type(value).__qualname__}"
            raise EncodeError(msg)


def from_builtins[T](obj: object, cls: type[T], *, bytes_as_str: bool = False) -> T:
    """Rebuild a value of type *cls* from plain builtins.

    Parameters
    ----------
    obj : object
        Output of a JSON or MessagePack decoder.
    cls : type[T]
        Declared type; may be a generic alias (``list[int]``), a union,
        ``Literal``, an ``Enum`` or a dataclass.  ``object`` and ``Any``
        accept anything unchanged.
    bytes_as_str : bool
        Accept base64 text where ``bytes`` is declared.

    Raises
    ------
    DecodeError
        If *obj* does not match *cls*.
    """
    return cast(T, _convert(obj, cls, "", bytes_as_str))


def _map_key(key: object) -> object:
    # decoders can only rebuild scalar keys
    if isinstance(key, (list, dict)):
        msg = f"Cannot encode dict key of type {type(key).__name__}; keys must be scalars"
        raise EncodeError(msg)
    return key


def _describe(tp: Any) -> str:
    if isinstance(tp, type):
        return tp.__qualname__
    return repr(tp).replace("typing.", "")


def _mismatch(tp: Any, obj: object, path: str) -> DecodeError:
    return DecodeError(f"Expected {_describe(tp)}, got {type(obj).__name__}", path)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _hints(cls: type) -> dict[str, Any]:
    hints = _field_types.get(cls)
    if hints is None:
        hints = get_type_hints(cls)
        _field_types[cls] = hints
    return hints


def _convert(obj: object, tp: Any, path: str, b64: bool) -> Any:
    if isinstance(tp, typing.TypeAliasType):
        return _convert(obj, tp.__value__, path, b64)
    if tp is Any or tp is object:
        return obj
    if tp is None or tp is _NONE_TYPE:
        if obj is None:
            return None
        raise _mismatch(None, obj, path)
    supertype = getattr(tp, "__supertype__", None)
    if supertype is not None:
        return _convert(obj, supertype, path, b64)

    origin = get_origin(tp)
    args = get_args(tp)

    if origin is typing.Annotated:
        return _convert(obj, args[0], path, b64)
    if origin is Union or origin is types.UnionType:
        for arg in args:
            try:
                return _convert(obj, arg, path, b64)
            except DecodeError:
                continue
        raise _mismatch(tp, obj, path)
    if origin is Literal:
        for literal in args:
            if obj == literal and type(obj) is type(literal):
                return literal
        raise DecodeError(f"Expected one of {list(args)!r}, got {obj!r}", path)

    container = origin or tp
    if container in (list, set, frozenset):
        if not isinstance(obj, (list, tuple)):
            raise _mismatch(tp, obj, path)
        item_tp = args[0] if args else Any
        items = [
            _convert(item, item_tp, f"{path}[{i}]", b64)
            for i, item in enumerate(cast(list[object], obj))
        ]
        return container(items)
    if container is tuple:
        if not isinstance(obj, (list, tuple)):
            raise _mismatch(tp, obj, path)
        seq = cast(list[object], obj)
        if not args or (len(args) == 2 and args[1] is Ellipsis):
            item_tp = args[0] if args else Any
            return tuple(_convert(item, item_tp, f"{path}[{i}]", b64) for i, item in enumerate(seq))
        if len(seq) != len(args):
            raise DecodeError(f"Expected {len(args)} items, got {len(seq)}", path)
        return tuple(
            _convert(item, item_tp, f"{path}[{i}]", b64)
            for i, (item, item_tp) in enumerate(zip(seq, args, strict=True))
        )
    if container is dict:
        if not isinstance(obj, dict):
            raise _mismatch(tp, obj, path)
        key_tp, value_tp = args if args else (Any, Any)
        return {
            _convert_key(k, key_tp, path, b64): _convert(v, value_tp, _join(path, str(k)), b64)
            for k, v in cast(dict[object, object], obj).items()
        }

    if not isinstance(tp, type):
        msg = f"Unsupported declared type {tp!r}"
        raise DecodeError(msg, path)

    if issubclass(tp, enum.Enum):
        try:
            return tp(obj)
        except ValueError:
            raise DecodeError(f"{obj!r} is not a valid {tp.__qualname__}", path) from None
    if tp is bool:
        if isinstance(obj, bool):
            return obj
        raise _mismatch(tp, obj, path)
    if tp is int:
        if isinstance(obj, int) and not isinstance(obj, bool):
            return obj
        raise _mismatch(tp, obj, path)
    if tp is float:
        if isinstance(obj, (int, float)) and not isinstance(obj, bool):
            return float(obj)
        raise _mismatch(tp, obj, path)
    if tp is str:
        if isinstance(obj, str):
            return obj
        raise _mismatch(tp, obj, path)
    if tp in (bytes, bytearray):
        if isinstance(obj, (bytes, bytearray)):
            return tp(obj)
        if b64 and isinstance(obj, str):
            try:
                return tp(base64.b64decode(obj, validate=True))
            except binascii.Error:
                raise DecodeError("Invalid base64 data", path) from None
        raise _mismatch(tp, obj, path)
    if dataclasses.is_dataclass(tp):
        return _convert_dataclass(obj, tp, path, b64)
    if isinstance(obj, tp):
        return obj
    raise _mismatch(tp, obj, path)


def _convert_key(key: object, tp: Any, path: str, b64: bool) -> Any:
    # JSON object keys are always text
    if isinstance(key, str) and tp in (int, float):
        try:
            key = tp(key)
        except ValueError:
            raise _mismatch(tp, key, path) from None
    return _convert(key, tp, path, b64)


def _convert_dataclass(obj: object, cls: type, path: str, b64: bool) -> Any:
    if not isinstance(obj, dict):
        raise _mismatch(cls, obj, path)
    data = cast(dict[str, object], obj)
    hints = _hints(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        if f.name in data:
            kwargs[f.name] = _convert(data[f.name], hints.get(f.name, Any), _join(path, f.name), b64)
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            raise DecodeError(f"Missing field {f.name!r} for {cls.__qualname__}", path)
    try:
        return cls(**kwargs)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Invalid {cls.__qualname__}: {exc}", path) from exc
