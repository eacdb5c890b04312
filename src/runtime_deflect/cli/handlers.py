"""
CLI Command Handlers.

Each handler performs one command and returns a process exit code. Library
errors are reported through the console and turned into exit code 1.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from rich.markup import escape
from rich.table import Table

from runtime_deflect.analysis.resolver import DeclarationResolver
from runtime_deflect.config import DeflectionPlan
from runtime_deflect.core.deflector import PackageDeflector
from runtime_deflect.core.imports import ImportDirectiveExtractor
from runtime_deflect.core.build_context import location_to_path
from runtime_deflect.core.packages import resolve_package_table
from runtime_deflect.core.replicator import copy_and_deflect
from runtime_deflect.errors import DeflectError, TransformationError
from runtime_deflect.utils.console import console, log_error, log_info, log_success


def handle_deflect(package_dir: Path, copy_to: Optional[Path] = None, search_path: Optional[Path] = None) -> int:
  """
  Deflects a package, in place or into a new copy.

  Deflection always runs on a copy. Without `copy_to` the copy is staged in
  a temporary directory and the rewritten files are written back to
  `package_dir` only once every step succeeded. With `copy_to` a failed
  deflection removes the copy.

  Args:
      package_dir: The package to deflect (or to copy, with `copy_to`).
      copy_to: Directory to replicate the package into before deflecting.
      search_path: Where to look for ``pyproject.toml`` plan overrides.

  Returns:
      int: Exit code.
  """
  target = copy_to if copy_to is not None else package_dir
  try:
    plan = DeflectionPlan.load(search_path=search_path)
    if not package_dir.is_dir():
      raise TransformationError("Package directory does not exist", package_dir)
    deflector = PackageDeflector(plan)
    if copy_to is not None:
      if copy_to.exists():
        raise TransformationError("Destination already exists", copy_to)
      report = copy_and_deflect(package_dir, copy_to, deflector)
    else:
      with tempfile.TemporaryDirectory() as staging:
        staged = Path(staging) / package_dir.name
        report = copy_and_deflect(package_dir, staged, deflector)
        if report.changed:
          for relative in plan.rewritten_files:
            if (staged / relative).is_file():
              (package_dir / relative).parent.mkdir(parents=True, exist_ok=True)
              shutil.copyfile(staged / relative, package_dir / relative)
  except DeflectError as e:
    log_error(escape(str(e)))
    return 1

  if report.changed:
    log_success(f"Deflected [path]{escape(str(target))}[/path]")
  else:
    log_info(f"[path]{escape(str(target))}[/path] is already deflected")
  return 0


def handle_find_class(name: str, file: Path, root: Optional[Path] = None) -> int:
  """
  Prints the summary of a class declaration.

  Args:
      name: The class identifier.
      file: The file expected to declare it.
      root: Project root for relative paths. Defaults to the working directory.

  Returns:
      int: 0 if found, 1 if not found or on error.
  """
  resolver = DeclarationResolver(root or Path.cwd())
  try:
    declaration = resolver.find_class(name, file)
  except DeflectError as e:
    log_error(escape(str(e)))
    return 1

  if declaration is None:
    log_error(f"No class '{escape(name)}' in {escape(str(file))}")
    return 1

  table = Table(title=f"class {declaration.name}")
  table.add_column("Field")
  table.add_column("Type")
  table.add_column("Annotations")
  for field in declaration.fields:
    annotations = " ".join(a.source for a in field.metadata)
    for variable in field.variables:
      table.add_row(variable.name, str(field.type or "var"), escape(annotations))

  if declaration.superclass is not None:
    console.print(f"extends {escape(str(declaration.superclass))}")
  console.print(table)
  return 0


def handle_imports(file: Path, source_dir: Optional[Path] = None, include_original: bool = False) -> int:
  """
  Prints the normalized import directives of a file.

  Package references cannot be resolved without a build, so `file` must be
  an absolute path or ``file:`` URI.

  Returns:
      int: Exit code.
  """
  try:
    extractor = ImportDirectiveExtractor(location_to_path)
    statements = extractor.extract(
      location=location_to_path(file.absolute()),
      source_dir=source_dir,
      also_include_original_file=include_original,
    )
  except DeflectError as e:
    log_error(escape(str(e)))
    return 1

  for statement in statements:
    console.print(escape(statement), highlight=False, soft_wrap=True)
  return 0


def handle_packages(project_dir: Path) -> int:
  """
  Prints the dependency table of a resolved project.

  Returns:
      int: Exit code.
  """
  try:
    table = resolve_package_table(project_dir.absolute())
  except DeflectError as e:
    log_error(escape(str(e)))
    return 1

  view = Table(title="Resolved packages")
  view.add_column("Package")
  view.add_column("Location")
  for name in sorted(table):
    view.add_row(name, escape(str(table[name])))
  console.print(view)
  return 0
