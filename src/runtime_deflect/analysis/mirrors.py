"""
Type Handles and Ancestor Chains.

The build process needs to get from "a type that is executing" to "the class
that was written for it". The declaration layer never depends on a particular
reflection mechanism; it only requires objects exposing the
:class:`TypeHandle` capability:

- ``simple_name``: the class identifier,
- ``location``: the source file declaring it (path, ``file:`` or ``package:`` URI),
- ``superclass``: the handle of the direct superclass, or None.

Ancestry is flattened into an explicit ordered list terminated by the
universal root type (``Object``), so walking it always terminates.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Union, runtime_checkable

from runtime_deflect.errors import HierarchyError

ROOT_TYPE_NAME = "Object"
ROOT_TYPE_LOCATION = "dart:core/object.dart"


@runtime_checkable
class TypeHandle(Protocol):
  """Capability a live type descriptor must expose to be resolved statically."""

  @property
  def simple_name(self) -> str: ...

  @property
  def location(self) -> Union[str, Path]: ...

  @property
  def superclass(self) -> Optional["TypeHandle"]: ...


@dataclass(frozen=True)
class TypeMirror:
  """
  Immutable :class:`TypeHandle` implementation.

  A None superclass means the class implicitly extends the root type, as a
  class declared without an ``extends`` clause does.

  Example:
      >>> base = TypeMirror("Consumer", "package:dependency/src/dependency_base.dart")
      >>> sub = TypeMirror("ConsumerSubclass", "/app/lib/application.dart", superclass=base)
  """

  simple_name: str
  location: Union[str, Path]
  superclass: Optional["TypeMirror"] = None

  def ancestors(self) -> List["TypeHandle"]:
    return ancestor_chain(self)


OBJECT_MIRROR = TypeMirror(ROOT_TYPE_NAME, ROOT_TYPE_LOCATION)


def is_root_type(handle: TypeHandle) -> bool:
  """
  Checks whether `handle` is the universal root type.

  Args:
      handle: The type to check.

  Returns:
      bool: True for ``Object`` declared in ``dart:core``.
  """
  return handle.simple_name == ROOT_TYPE_NAME and str(handle.location).startswith("dart:core")


def ancestor_chain(handle: TypeHandle) -> List[TypeHandle]:
  """
  Flattens the superclass links of `handle` into an ordered list.

  The list starts with `handle` itself and ends with the root type. A type
  whose superclass is None is treated as extending the root directly, unless
  it is the root itself.

  Args:
      handle: The type to start from.

  Returns:
      List[TypeHandle]: ``[handle, parent, ..., Object]``.

  Raises:
      HierarchyError: If the superclass links form a cycle.
  """
  chain: List[TypeHandle] = []
  seen = set()
  current: Optional[TypeHandle] = handle
  while current is not None:
    key = (current.simple_name, str(current.location))
    if key in seen:
      raise HierarchyError(f"Cyclic superclass chain at '{current.simple_name}'", current.location)
    seen.add(key)
    chain.append(current)
    if is_root_type(current):
      return chain
    current = current.superclass

  chain.append(OBJECT_MIRROR)
  return chain
