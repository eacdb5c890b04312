"""
Dependency Table and Package Manifests.

Reads the outputs of dependency resolution, which this package consumes but
never performs:

1.  **Legacy `.packages` file**: one ``name:uri`` line per dependency, where
    the URI points at the package's ``lib/`` directory.
2.  **`.dart_tool/package_config.json`**: the JSON successor, with explicit
    ``rootUri`` and ``packageUri`` per package.

Both produce the same dependency table: package name to package root
directory. Package manifests (``pubspec.yaml``) are read into the
:class:`Pubspec` model.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from runtime_deflect.errors import ResolutionError

PACKAGES_FILE = ".packages"
PACKAGE_CONFIG_FILE = Path(".dart_tool") / "package_config.json"
PUBSPEC_FILE = "pubspec.yaml"


class Pubspec(BaseModel):
  """
  The fields of a package manifest this package reads.

  Unknown keys are kept so the manifest can be re-serialized without loss.
  """

  model_config = ConfigDict(extra="allow")

  name: str = Field(..., description="The package name.")
  version: Optional[str] = Field(None, description="The package version, if declared.")
  dependencies: Dict[str, Any] = Field(default_factory=dict, description="Runtime dependencies.")
  dev_dependencies: Dict[str, Any] = Field(default_factory=dict, description="Development-only dependencies.")

  @field_validator("version", mode="before")
  @classmethod
  def coerce_version(cls, v: Any) -> Optional[str]:
    # YAML reads "version: 1.0" as a float.
    return None if v is None else str(v)


class PackageConfigEntry(BaseModel):
  """One package in ``package_config.json``."""

  model_config = ConfigDict(populate_by_name=True)

  name: str
  root_uri: str = Field(..., alias="rootUri")
  package_uri: str = Field("lib/", alias="packageUri")
  language_version: Optional[str] = Field(None, alias="languageVersion")


class PackageConfig(BaseModel):
  """The ``package_config.json`` document."""

  model_config = ConfigDict(populate_by_name=True)

  config_version: int = Field(2, alias="configVersion")
  packages: List[PackageConfigEntry] = Field(default_factory=list)


def uri_to_path(uri: str, relative_to: Path) -> Path:
  """
  Converts a ``file:`` URI or a relative URI reference into a path.

  Args:
      uri: The URI text, e.g. ``file:///pub/cache/foo-1.0/lib/`` or ``../foo/lib/``.
      relative_to: Directory that relative references resolve against.

  Returns:
      Path: An absolute, normalized path.

  Raises:
      ResolutionError: If the URI uses a scheme other than ``file``.
  """
  parsed = urlparse(uri)
  if parsed.scheme == "file":
    return Path(url2pathname(parsed.path))
  if parsed.scheme and len(parsed.scheme) > 1:
    raise ResolutionError(f"Unsupported URI scheme '{parsed.scheme}' in dependency table", uri)
  return Path(os.path.normpath(relative_to / unquote(uri)))


def _package_root(lib_dir: Path) -> Path:
  return lib_dir.parent if lib_dir.name == "lib" else lib_dir


def read_packages_file(path: Path, relative_to: Path) -> Dict[str, Path]:
  """
  Parses a legacy ``.packages`` file.

  Args:
      path: The ``.packages`` file.
      relative_to: Directory relative entries resolve against.

  Returns:
      Dict[str, Path]: Package name to package root directory.

  Raises:
      ResolutionError: On malformed lines or duplicate package names.
  """
  table: Dict[str, Path] = {}
  for number, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
    line = raw.strip()
    if not line or line.startswith("#"):
      continue
    name, sep, uri = line.partition(":")
    if not sep or not name or not uri:
      raise ResolutionError(f"Malformed entry on line {number}: '{line}'", path)
    if name in table:
      raise ResolutionError(f"Duplicate package '{name}'", path)
    table[name] = _package_root(uri_to_path(uri, relative_to))
  return table


def read_package_config(path: Path) -> Dict[str, Path]:
  """
  Parses a ``.dart_tool/package_config.json`` file.

  ``rootUri`` values resolve against the directory containing the file.

  Args:
      path: The JSON file.

  Returns:
      Dict[str, Path]: Package name to package root directory.

  Raises:
      ResolutionError: If the document is invalid or names a package twice.
  """
  try:
    config = PackageConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
  except (json.JSONDecodeError, ValidationError) as e:
    raise ResolutionError(f"Invalid package config: {e}", path) from e

  base = path.parent
  table: Dict[str, Path] = {}
  for entry in config.packages:
    if entry.name in table:
      raise ResolutionError(f"Duplicate package '{entry.name}'", path)
    root_uri = entry.root_uri if entry.root_uri.endswith("/") else f"{entry.root_uri}/"
    table[entry.name] = uri_to_path(root_uri, base)
  return table


def resolve_package_table(project_dir: Path) -> Dict[str, Path]:
  """
  Reads the dependency table of a resolved project.

  Prefers ``.packages``, falling back to ``.dart_tool/package_config.json``.

  Args:
      project_dir: The project root containing the resolution outputs.

  Returns:
      Dict[str, Path]: Package name to package root directory.

  Raises:
      ResolutionError: If the project has not been resolved.
  """
  legacy = project_dir / PACKAGES_FILE
  if legacy.is_file():
    return read_packages_file(legacy, relative_to=project_dir)

  modern = project_dir / PACKAGE_CONFIG_FILE
  if modern.is_file():
    return read_package_config(modern)

  raise ResolutionError("No dependency table found; resolve the project's dependencies first", project_dir)


def load_pubspec(path: Path) -> Pubspec:
  """
  Loads a package manifest.

  Args:
      path: The ``pubspec.yaml`` file, or the directory containing it.

  Returns:
      Pubspec: The validated manifest.

  Raises:
      ResolutionError: If the file is missing or not a valid manifest.
  """
  if path.is_dir():
    path = path / PUBSPEC_FILE
  if not path.is_file():
    raise ResolutionError("Package manifest does not exist", path)

  try:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    # An empty section ('dependencies:') loads as None.
    for key in ("dependencies", "dev_dependencies"):
      if key in data and data[key] is None:
        data[key] = {}
    return Pubspec.model_validate(data)
  except (yaml.YAMLError, ValidationError, TypeError) as e:
    raise ResolutionError(f"Invalid package manifest: {e}", path) from e
