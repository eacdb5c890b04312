"""
Declaration Resolver.

Answers "find class C in file F" and "find field X on class C" queries against
parsed source files. Parsing is lazy and cached per absolute file path: the
first query against a file parses it, every later query reuses the same
:class:`~runtime_deflect.analysis.syntax.CompilationUnit` object. Declaration
queries happen once per reflective call site during code generation, so the
cache keeps re-parse cost constant per file.

A file that fails to parse raises and is not cached; other files are not
affected.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from runtime_deflect.analysis.parser import DartDeclarationParser, SourceParser
from runtime_deflect.analysis.syntax import ClassDeclaration, CompilationUnit, FieldDeclaration
from runtime_deflect.errors import ResolutionError

logger = logging.getLogger(__name__)


class DeclarationResolver:
  """
  Cached, project-scoped access to declaration syntax trees.

  Attributes:
      root: The project directory. Relative file locations resolve against it.
      parser: The parser used for cache misses.
  """

  def __init__(self, root: Union[str, Path], parser: Optional[SourceParser] = None):
    """
    Initializes an empty resolver.

    Args:
        root: The project root directory.
        parser: Parser implementation. Defaults to :class:`DartDeclarationParser`.
    """
    self.root = Path(root).absolute()
    self.parser = parser or DartDeclarationParser()
    self._units: Dict[Path, CompilationUnit] = {}

  @property
  def cached_files(self) -> List[Path]:
    return list(self._units)

  def _normalize(self, file_location: Union[str, Path]) -> Path:
    path = Path(file_location)
    if not path.is_absolute():
      path = self.root / path
    return path.resolve()

  def resolve_unit(self, file_location: Union[str, Path]) -> CompilationUnit:
    """
    Returns the syntax tree of a file, parsing it on first access.

    Args:
        file_location: Path to an existing source file.

    Returns:
        CompilationUnit: The cached unit for the file.

    Raises:
        ResolutionError: If the file does not exist.
        DartParseError: If the file is malformed.
    """
    path = self._normalize(file_location)
    unit = self._units.get(path)
    if unit is not None:
      return unit

    if not path.is_file():
      raise ResolutionError("Source file does not exist", path)

    logger.debug("Parsing %s", path)
    unit = self.parser.parse(path.read_text(encoding="utf-8"), path)
    self._units[path] = unit
    return unit

  def find_class(self, name: str, file_location: Union[str, Path]) -> Optional[ClassDeclaration]:
    """
    Finds a class declared in a file by exact identifier.

    Args:
        name: The class identifier.
        file_location: The file expected to declare it.

    Returns:
        The class declaration, or None if the file declares no such class.
    """
    return self.resolve_unit(file_location).get_class(name)

  def find_field(self, declaration: ClassDeclaration, field_name: str) -> Optional[FieldDeclaration]:
    """
    Finds the field declaration declaring `field_name` on a single class.

    Superclasses are not searched.

    Args:
        declaration: The class to search.
        field_name: The field identifier.

    Returns:
        The enclosing field declaration, or None.
    """
    variable = declaration.get_field(field_name)
    if variable is None:
      return None
    return variable.parent

  def invalidate(self, file_location: Optional[Union[str, Path]] = None) -> None:
    """Drops one cached unit, or all of them when no location is given."""
    if file_location is None:
      self._units.clear()
    else:
      self._units.pop(self._normalize(file_location), None)
