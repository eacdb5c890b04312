"""
Import Directive Extraction.

Generated sources are written to a different directory than the file they are
generated from, so relative imports copied out of that file would break. The
:class:`ImportDirectiveExtractor` scans a file (or raw source text) for import
statements and normalizes them:

1.  ``package:`` imports are kept verbatim.
2.  Imports with any other URI scheme (``dart:``, ``file:``) or an absolute
    path are kept verbatim.
3.  Relative imports are resolved against a source directory and rewritten as
    ``file:`` imports. A relative import whose target does not exist fails.

Combinators (``as``, ``show``, ``hide``, ``deferred as``) are preserved.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from runtime_deflect.enums import ImportKind
from runtime_deflect.errors import ResolutionError, UsageError

Reference = Union[str, Path]

IMPORT_PATTERN = re.compile(r"""import\s+(['"])([^'"]*)\1(\s+[^;'"]*)?;""")

_SCHEME_PATTERN = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")


@dataclass(frozen=True)
class ImportDirective:
  """
  A normalized import statement.

  Attributes:
      kind: How the original URI was classified.
      uri: The URI as written in the source.
      statement: The emitted statement (rewritten for relative imports).
  """

  kind: ImportKind
  uri: str
  statement: str


def classify_uri(uri: str) -> ImportKind:
  """
  Classifies an import URI.

  Args:
      uri: The URI text between the quotes.

  Returns:
      ImportKind: PACKAGE, ABSOLUTE or RELATIVE.
  """
  match = _SCHEME_PATTERN.match(uri)
  if match and len(match.group(1)) > 1:
    return ImportKind.PACKAGE if match.group(1) == "package" else ImportKind.ABSOLUTE
  if os.path.isabs(uri):
    return ImportKind.ABSOLUTE
  return ImportKind.RELATIVE


class ImportDirectiveExtractor:
  """
  Extracts and normalizes the import statements of a source file.
  """

  def __init__(self, resolve_location: Callable[[Reference], Optional[Path]]):
    """
    Args:
        resolve_location: Maps a ``package:`` URI or absolute reference to a
            file path (usually :meth:`BuildContext.resolve_location`).
    """
    self.resolve_location = resolve_location

  def extract(
    self,
    location: Optional[Reference] = None,
    source: Optional[str] = None,
    source_dir: Optional[Path] = None,
    also_include_original_file: bool = False,
  ) -> List[str]:
    """
    Returns the normalized import statements of a file or source text.

    Args:
        location: The file to read. Mutually exclusive with `source`.
        source: Raw source text. Mutually exclusive with `location`.
        source_dir: Directory relative imports resolve against. When None,
            relative imports resolve against the working directory.
        also_include_original_file: Append an import of `location` itself.

    Returns:
        List[str]: Statements in first-occurrence order, with the optional
        original-file import last.

    Raises:
        UsageError: If both or neither of `location` and `source` are given,
            or `also_include_original_file` is set without `location`.
        ResolutionError: If `location` does not exist, or a relative import
            cannot be resolved to a file.
    """
    return [d.statement for d in self.directives(location, source, source_dir, also_include_original_file)]

  def directives(
    self,
    location: Optional[Reference] = None,
    source: Optional[str] = None,
    source_dir: Optional[Path] = None,
    also_include_original_file: bool = False,
  ) -> List[ImportDirective]:
    """Same as :meth:`extract`, returning :class:`ImportDirective` records."""
    if (location is None) == (source is None):
      raise UsageError("Either 'location' or 'source' must be given, but not both")
    if also_include_original_file and location is None:
      raise UsageError("'also_include_original_file' may only be set if 'location' is also set")

    if source is None:
      path = self.resolve_location(location)
      if not path.is_file():
        raise ResolutionError("Source file does not exist", path)
      text = path.read_text(encoding="utf-8")
    else:
      text = source

    results = []
    for match in IMPORT_PATTERN.finditer(text):
      uri = match.group(2)
      kind = classify_uri(uri)
      if kind is ImportKind.RELATIVE:
        target = self._resolve_relative(uri, source_dir, location)
        combinators = match.group(3) or ""
        statement = f"import '{target.as_uri()}'{combinators};"
      else:
        statement = match.group(0)
      results.append(ImportDirective(kind=kind, uri=uri, statement=statement))

    if also_include_original_file:
      original = location.as_uri() if isinstance(location, Path) else str(location)
      results.append(
        ImportDirective(kind=classify_uri(original), uri=original, statement=f"import '{original}';")
      )

    return results

  @staticmethod
  def _resolve_relative(uri: str, source_dir: Optional[Path], location: Optional[Reference]) -> Path:
    joined = Path(source_dir) / uri if source_dir is not None else Path(uri)
    target = Path(os.path.normpath(joined.absolute()))
    if not target.is_file():
      origin = location if location is not None else "<source>"
      raise ResolutionError(
        f"Cannot resolve relative URI '{uri}' in file {origin}: Replace imported URIs with package or absolute URIs",
        target,
      )
    return target
