"""
Error Taxonomy.

Every failure raised by the package derives from :class:`DeflectError`.
Lookups that simply find nothing (a class, a field, an annotation) are not
errors and return ``None`` or an empty list instead.
"""

from pathlib import Path
from typing import Optional, Union

Location = Union[str, Path]


class DeflectError(Exception):
  """
  Base class for all build-time failures.

  Attributes:
      location: The file or reference that caused the failure, if known.
  """

  def __init__(self, message: str, location: Optional[Location] = None):
    super().__init__(message)
    self.message = message
    self.location = location

  def __str__(self) -> str:
    if self.location is None:
      return self.message
    return f"{self.message} ({self.location})"


class UsageError(DeflectError, ValueError):
  """The caller misused an API (conflicting arguments, relative locations)."""


class ResolutionError(DeflectError, LookupError):
  """A reference could not be resolved to an existing file or package."""


class DartParseError(DeflectError):
  """
  Raised when a source file is malformed.

  Attributes:
      line: 1-based line where parsing failed.
  """

  def __init__(self, message: str, location: Optional[Location] = None, line: Optional[int] = None):
    super().__init__(message, location)
    self.line = line

  def __str__(self) -> str:
    where = str(self.location) if self.location is not None else "<source>"
    if self.line is not None:
      where = f"{where}:{self.line}"
    return f"{self.message} ({where})"


class HierarchyError(DeflectError):
  """The superclass links of a type form a cycle."""


class TransformationError(DeflectError):
  """A deflection step could not find the text or section it rewrites."""
