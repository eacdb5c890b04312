"""
Package Replication.

Packages are never deflected in place. The :class:`PackageReplicator` copies
each dependency into its own directory under the build's packages directory
and deflects the copy. If deflection fails the copy is deleted, so a retry
always starts from a fresh replica.
"""

import shutil
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from rich.markup import escape

from runtime_deflect.core.build_context import BuildContext
from runtime_deflect.core.deflector import DeflectionReport, PackageDeflector
from runtime_deflect.errors import DeflectError, ResolutionError
from runtime_deflect.utils.console import log_error, log_info, log_success

IGNORED_ENTRIES = (".dart_tool", ".packages", "build", ".git")


def copy_and_deflect(
  source_dir: Path, destination: Path, deflector: Optional[PackageDeflector] = None
) -> Optional[DeflectionReport]:
  """
  Copies a package to `destination` and deflects the copy.

  Any previous `destination` is replaced. Build artifacts and resolution
  output are not copied.

  Args:
      source_dir: The package root.
      destination: Where the copy is written.
      deflector: Rewrites the copy. The copy is left as-is when None.

  Returns:
      Optional[DeflectionReport]: What deflection changed, or None without a deflector.

  Raises:
      DeflectError: If deflection fails. The copy is removed first.
  """
  if destination.exists():
    shutil.rmtree(destination)
  shutil.copytree(source_dir, destination, ignore=shutil.ignore_patterns(*IGNORED_ENTRIES))
  if deflector is None:
    return None
  try:
    return deflector.deflect(destination)
  except DeflectError:
    shutil.rmtree(destination, ignore_errors=True)
    log_error(f"Deflection failed, discarded [path]{escape(str(destination))}[/path]")
    raise


class PackageReplicator:
  """
  Copies dependency packages into the build and deflects the copies.

  Attributes:
      context: The build context supplying the dependency table and directories.
      deflectors: Deflector per package name. Packages without one are copied as-is.
  """

  def __init__(self, context: BuildContext, deflectors: Optional[Mapping[str, PackageDeflector]] = None):
    self.context = context
    self.deflectors: Dict[str, PackageDeflector] = dict(deflectors or {})

  def destination_for(self, name: str) -> Path:
    return self.context.build_packages_directory / name

  def replicate(self, name: str, source_dir: Optional[Path] = None) -> Path:
    """
    Replicates one package, replacing any previous copy.

    Args:
        name: The package name.
        source_dir: The package root. Looked up in the dependency table if None.

    Returns:
        Path: The replica directory.

    Raises:
        ResolutionError: If the package is unknown or its directory is missing.
        DeflectError: If deflection fails. The replica is removed first.
    """
    if source_dir is None:
      source_dir = self.context.resolved_packages.get(name)
      if source_dir is None:
        raise ResolutionError(f"Unknown package '{name}'")
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
      raise ResolutionError(f"Package '{name}' directory does not exist", source_dir)

    destination = self.destination_for(name)
    deflector = self.deflectors.get(name)
    copy_and_deflect(source_dir, destination, deflector)
    if deflector is not None:
      log_success(f"Deflected '{escape(name)}'")
    else:
      log_info(f"Replicated '{escape(name)}'")
    return destination

  def replicate_all(self, names: Optional[Iterable[str]] = None) -> Dict[str, Path]:
    """
    Replicates packages from the dependency table, one at a time.

    Args:
        names: Packages to replicate. Defaults to every table entry.

    Returns:
        Dict[str, Path]: Package name to replica directory.
    """
    table = self.context.resolved_packages
    selected = sorted(table) if names is None else list(names)
    return {name: self.replicate(name) for name in selected}
