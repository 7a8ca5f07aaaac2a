"""
Registries of simulation classes: serialization names, used by `from_dict`, and
configuration tags, used to build moves from a configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

_class_registry: dict[str, type] = {}
_tag_registry: dict[str, type] = {}


def register_class(cls: type, class_name: str | None = None) -> type:
    """
    Register a class under its serialization name.

    Parameters
    ----------
    cls : type
        The class to register.
    class_name : str, optional
        The name to register the class with. If None, the class name is used.

    Returns
    -------
    type
        The registered class.
    """
    if class_name is None:
        class_name = cls.__name__

    _class_registry[class_name] = cls

    return cls


def register(class_name: str | None = None) -> Callable[[type], type]:
    """
    Decorator version of [`register_class`][mcmoves.registry.register_class].

    Parameters
    ----------
    class_name : str, optional
        The name to register the class with. If None, the class name is used.
    """

    def decorator(cls: type) -> type:
        return register_class(cls, class_name)

    return decorator


def get_class(class_name: str) -> type:
    """
    Get a class by its registered name.

    Parameters
    ----------
    class_name : str
        The registered name.

    Returns
    -------
    type
        The class registered with the given name.

    Raises
    ------
    KeyError
        If nothing is registered under `class_name`.
    """
    if class_name not in _class_registry:
        raise KeyError(
            f"Class `{class_name}` not registered in the global registry. Available classes: {list(_class_registry.keys())}"
        )

    return _class_registry[class_name]


def get_class_name(cls: type) -> str | None:
    """Return the first name `cls` was registered under, or None."""
    for name, registered_cls in _class_registry.items():
        if registered_cls is cls:
            return name

    return None


def get_typed_class(name: str, expected_base: type) -> type:
    """
    Get a class by its registered name and check that it derives from `expected_base`.

    Parameters
    ----------
    name : str
        The registered name.
    expected_base : type
        The base class that the returned class should inherit from.

    Returns
    -------
    type
        The class registered with the given name.

    Raises
    ------
    KeyError
        If nothing is registered under `name`.
    TypeError
        If the registered class is not a subclass of `expected_base`.
    """
    cls = get_class(name)

    if not issubclass(cls, expected_base):
        raise TypeError(
            f"Class `{name}` is not a {expected_base.__name__} subclass. Got {cls.__name__} instead."
        )

    return cls


def registered_names(expected_base: type) -> list[str]:
    """List every registered name whose class derives from `expected_base`."""
    return [
        name
        for name, cls in _class_registry.items()
        if isinstance(cls, type) and issubclass(cls, expected_base)
    ]


def register_tag(tag: str, cls: type) -> type:
    """
    Bind a configuration tag, such as ``"moltransrot"``, to a move class.

    Tags live in their own table: they name what a configuration entry builds and are
    never used to restore a serialized object.

    Parameters
    ----------
    tag : str
        The configuration tag.
    cls : type
        The class built for entries carrying `tag`.

    Returns
    -------
    type
        The registered class.

    Raises
    ------
    ValueError
        If `tag` is already bound to another class.
    """
    if _tag_registry.get(tag, cls) is not cls:
        raise ValueError(
            f"Tag `{tag}` already bound to {_tag_registry[tag].__name__}, cannot bind it to {cls.__name__}."
        )

    _tag_registry[tag] = cls

    return cls


def get_tagged_class(tag: str, expected_base: type) -> type:
    """
    Get the class bound to a configuration tag and check that it derives from `expected_base`.

    Raises
    ------
    KeyError
        If `tag` is not registered.
    TypeError
        If the bound class is not a subclass of `expected_base`.
    """
    if tag not in _tag_registry:
        raise KeyError(
            f"Tag `{tag}` not registered as a configuration tag. Available tags: {sorted(_tag_registry)}"
        )

    cls = _tag_registry[tag]

    if not issubclass(cls, expected_base):
        raise TypeError(
            f"Tag `{tag}` does not build a {expected_base.__name__}. Got {cls.__name__} instead."
        )

    return cls


def get_tag(cls: type) -> str | None:
    """Return the configuration tag bound to exactly `cls`, or None."""
    for tag, registered_cls in _tag_registry.items():
        if registered_cls is cls:
            return tag

    return None


def registered_tags() -> list[str]:
    """List the configuration tags in registration order."""
    return list(_tag_registry)
