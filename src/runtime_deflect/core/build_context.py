"""
Build Context.

The :class:`BuildContext` is the single authority for location questions
during one build:

1.  **Locations**: the application's library file, the build directory, the
    executable output, and every directory derived from them. Accessing a
    location creates it if necessary.
2.  **Package references**: ``package:name/path.dart`` references are mapped
    to files through the resolved dependency table.
3.  **Declarations**: the bridge from a live type handle to the class that was
    written for it, including field-annotation lookup along the superclass
    chain.

A context is constructed once per build, either directly or from the flat
mapping produced by :meth:`BuildContext.to_map`. Only the declared fields
survive serialization; the resolver cache and the dependency table are
re-derived.
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlparse
from urllib.request import url2pathname

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationInfo, field_serializer, field_validator

from runtime_deflect.analysis.mirrors import TypeHandle, ancestor_chain, is_root_type
from runtime_deflect.analysis.resolver import DeclarationResolver
from runtime_deflect.analysis.syntax import Annotation, ClassDeclaration
from runtime_deflect.core.imports import ImportDirectiveExtractor
from runtime_deflect.core.packages import Pubspec, load_pubspec, resolve_package_table
from runtime_deflect.enums import SourceKind
from runtime_deflect.errors import ResolutionError, UsageError

logger = logging.getLogger(__name__)

PACKAGE_SCHEME = "package:"
SOURCE_EXTENSION = ".dart"

Reference = Union[str, Path]


def _identity_reflector(subject: Any) -> TypeHandle:
  if isinstance(subject, TypeHandle):
    return subject
  raise UsageError(f"{subject!r} does not expose simple_name, location and superclass")


def location_to_path(value: Any) -> Path:
  """
  Converts an absolute path or ``file:`` URI into a :class:`Path`.

  Args:
      value: A Path, an absolute path string or a ``file:`` URI string.

  Returns:
      Path: The absolute location.

  Raises:
      UsageError: If the location is relative or uses another scheme.
  """
  if isinstance(value, Path):
    path = value
  else:
    text = str(value)
    parsed = urlparse(text)
    if parsed.scheme == "file":
      path = Path(url2pathname(parsed.path))
    elif parsed.scheme and len(parsed.scheme) > 1:
      raise UsageError(f"Location must be a path or file URI, got '{text}'")
    else:
      path = Path(text)
  if not path.is_absolute():
    raise UsageError(f"Location must be absolute, got '{value}'")
  return path


def is_platform_location(location: Any) -> bool:
  """True for locations such as ``dart:collection/list.dart`` that name no file."""
  if location is None or isinstance(location, Path):
    return False
  scheme = urlparse(str(location)).scheme
  return len(scheme) > 1 and scheme not in ("file", PACKAGE_SCHEME[:-1])


class BuildContext(BaseModel):
  """
  Configuration and location authority for one build.
  """

  model_config = ConfigDict(populate_by_name=True, frozen=True)

  root_library_file_uri: Path = Field(
    ..., alias="rootLibraryFileUri", description="The library file of the application to compile."
  )
  build_directory_uri: Path = Field(
    ..., alias="buildDirectoryUri", description="Directory where build artifacts are stored."
  )
  executable_uri: Path = Field(..., alias="executableUri", description="The executable build product.")
  source: str = Field("", alias="source", description="The source script for the executable.")
  offline: bool = Field(True, alias="offline", description="Use cached packages instead of the network.")
  for_tests: bool = Field(
    False, alias="forTests", description="Build the test variant and include dev dependencies."
  )

  _resolver: DeclarationResolver = PrivateAttr()
  _resolved_packages: Optional[Dict[str, Path]] = PrivateAttr(default=None)
  _reflector: Optional[Callable[[Any], TypeHandle]] = PrivateAttr(default=None)

  @field_validator("root_library_file_uri", "build_directory_uri", "executable_uri", mode="before")
  @classmethod
  def validate_location(cls, v: Any) -> Path:
    """
    Accepts absolute paths and ``file:`` URIs.

    Raises:
        ValueError: If the location is relative or not a file location.
    """
    return location_to_path(v)

  @field_validator("offline", "for_tests", mode="before")
  @classmethod
  def default_missing_flags(cls, v: Any, info: ValidationInfo) -> Any:
    if v is None:
      return cls.model_fields[info.field_name].default
    return v

  @field_serializer("root_library_file_uri", "build_directory_uri", "executable_uri")
  def serialize_location(self, v: Path) -> str:
    return v.as_uri()

  def model_post_init(self, __context: Any) -> None:
    self._resolver = DeclarationResolver(self.source_application_directory)

  # --- Serialization ---

  @classmethod
  def from_map(cls, data: Dict[str, Any]) -> "BuildContext":
    """
    Reconstructs a context from :meth:`to_map` output.

    Args:
        data: Mapping with ``rootLibraryFileUri``, ``buildDirectoryUri``,
            ``executableUri``, ``source``, ``offline`` and ``forTests``.

    Returns:
        BuildContext: An equivalent context with freshly derived state.
    """
    return cls.model_validate(data)

  def to_map(self) -> Dict[str, Any]:
    """
    Serializes the context into a flat mapping of plain values.

    Returns:
        Dict[str, Any]: Locations as ``file:`` URIs, flags as booleans.
    """
    return self.model_dump(by_alias=True)

  def with_reflector(self, reflector: Callable[[Any], TypeHandle]) -> "BuildContext":
    """
    Installs the facility turning live types into :class:`TypeHandle` objects.

    By default, subjects must already implement the capability.

    Args:
        reflector: Callable returning a handle for a type.

    Returns:
        BuildContext: This context.
    """
    self._reflector = reflector
    return self

  def reflect(self, subject: Any) -> TypeHandle:
    """Turns `subject` into a handle through the installed reflector."""
    if self._reflector is None:
      return _identity_reflector(subject)
    return self._reflector(subject)

  # --- Derived properties ---

  @property
  def resolver(self) -> DeclarationResolver:
    return self._resolver

  @property
  def source_kind(self) -> SourceKind:
    return SourceKind.TEST if self.for_tests else SourceKind.NORMAL

  @property
  def include_dev_dependencies(self) -> bool:
    return self.for_tests

  @property
  def source_application_directory(self) -> Path:
    """The application package root (the parent of the library's ``lib/``)."""
    return self.get_directory(self.root_library_file_uri.parent.parent)

  @property
  def source_library_file(self) -> Path:
    return self.get_file(self.root_library_file_uri)

  @property
  def build_directory(self) -> Path:
    return self.get_directory(self.build_directory_uri)

  @property
  def build_runtime_directory(self) -> Path:
    """Where the generated runtime package is written."""
    return self.get_directory(self.build_directory_uri / "generated_runtime")

  @property
  def build_packages_directory(self) -> Path:
    """Where replicated (and deflected) packages are written."""
    return self.get_directory(self.build_directory_uri / "packages")

  @property
  def build_application_directory(self) -> Path:
    return self.get_directory(self.build_packages_directory / self.source_application_pubspec.name)

  @property
  def target_script_file(self) -> Path:
    """The generated entry point: ``main.dart``, or ``test/main_test.dart`` for test builds."""
    if self.for_tests:
      return self.get_directory(self.build_directory_uri / "test") / f"main_test{SOURCE_EXTENSION}"
    return self.build_directory_uri / f"main{SOURCE_EXTENSION}"

  @property
  def source_application_pubspec(self) -> Pubspec:
    return load_pubspec(self.source_application_directory)

  @property
  def resolved_packages(self) -> Dict[str, Path]:
    """
    The dependency table, read once from the application's resolution output.

    Returns:
        Dict[str, Path]: Package name to package root directory.
    """
    if self._resolved_packages is None:
      self._resolved_packages = resolve_package_table(self.source_application_directory)
      logger.debug("Resolved %d packages", len(self._resolved_packages))
    return self._resolved_packages

  # --- Filesystem ---

  def get_directory(self, location: Reference) -> Path:
    """
    Returns the directory at `location`, creating it recursively if missing.

    Args:
        location: An absolute directory path.

    Returns:
        Path: The existing directory.
    """
    directory = Path(location)
    directory.mkdir(parents=True, exist_ok=True)
    return directory

  def get_file(self, location: Reference) -> Path:
    """
    Returns the file path at `location`, creating its parent directories.

    The file itself is not created.

    Args:
        location: An absolute file path.

    Returns:
        Path: The file path.
    """
    file_path = Path(location)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    return file_path

  # --- Resolution ---

  def resolve_location(self, ref: Optional[Reference]) -> Optional[Path]:
    """
    Maps a reference to an absolute file location.

    ``package:name/a/b.dart`` becomes ``<root of name>/lib/a/b.dart``.
    Absolute paths and ``file:`` URIs are returned as paths, unchanged.

    Args:
        ref: The reference, or None.

    Returns:
        Optional[Path]: The location, or None when `ref` is None.

    Raises:
        ResolutionError: If the package is not in the dependency table, or the
            reference uses a non-file scheme such as ``dart:``.
        UsageError: If the reference is neither absolute nor a package reference.
    """
    if ref is None:
      return None

    if isinstance(ref, Path):
      if not ref.is_absolute():
        raise UsageError("Location must be absolute or a package reference", ref)
      return ref

    if ref.startswith(PACKAGE_SCHEME):
      segments = ref[len(PACKAGE_SCHEME) :].split("/")
      package = segments[0]
      if not package or len(segments) < 2:
        raise UsageError("Package reference must name a package and a path", ref)
      root = self.resolved_packages.get(package)
      if root is None:
        raise ResolutionError(f"Unknown package '{package}'", ref)
      return root.joinpath("lib", *segments[1:])

    parsed = urlparse(ref)
    if parsed.scheme == "file":
      path = Path(url2pathname(parsed.path))
      if not path.is_absolute():
        raise UsageError("File reference must be absolute", ref)
      return path
    if parsed.scheme and len(parsed.scheme) > 1:
      raise ResolutionError(f"Cannot resolve '{parsed.scheme}:' reference to a file", ref)
    if os.path.isabs(ref):
      return Path(ref)
    raise UsageError("Location must be absolute or a package reference", ref)

  def get_import_directives(
    self,
    location: Optional[Reference] = None,
    source: Optional[str] = None,
    source_dir: Optional[Path] = None,
    also_include_original_file: bool = False,
  ) -> List[str]:
    """
    Returns the normalized imports of a file or source text.

    See :meth:`ImportDirectiveExtractor.extract`.
    """
    extractor = ImportDirectiveExtractor(self.resolve_location)
    return extractor.extract(
      location=location,
      source=source,
      source_dir=source_dir,
      also_include_original_file=also_include_original_file,
    )

  # --- Declarations ---

  def find_class(self, name: str, ref: Reference) -> Optional[ClassDeclaration]:
    location = self.resolve_location(ref)
    if location is None:
      raise UsageError("A file reference is required to find a class")
    return self._resolver.find_class(name, location)

  def get_declaration_for_type(self, subject: Any) -> Optional[ClassDeclaration]:
    """
    Finds the class declaration written for a live type.

    Args:
        subject: A type handle, or anything the installed reflector accepts.

    Returns:
        Optional[ClassDeclaration]: The declaration, or None if the declaring
        file has no class of that name.
    """
    return self._find_declaration(self.reflect(subject))

  def _find_declaration(self, handle: TypeHandle) -> Optional[ClassDeclaration]:
    return self._resolver.find_class(handle.simple_name, self.resolve_location(handle.location))

  def get_annotations_for_field(self, subject: Any, field_name: str) -> List[Annotation]:
    """
    Returns the annotations of a field, searching the superclass chain.

    The walk starts at `subject` and stops before the root type. Types whose
    declaration cannot be found are skipped, as are types declared in
    platform libraries (``dart:`` and other non-file locations), which have
    no source file.

    Args:
        subject: The type to start from.
        field_name: The field identifier.

    Returns:
        List[Annotation]: The annotations of the declaration of the first
        class in the chain declaring the field, or an empty list.

    Raises:
        HierarchyError: If the superclass chain is cyclic.
    """
    for handle in ancestor_chain(self.reflect(subject)):
      if is_root_type(handle):
        break
      if is_platform_location(handle.location):
        logger.debug("Skipping %s declared in platform library %s", handle.simple_name, handle.location)
        continue
      declaration = self._find_declaration(handle)
      if declaration is None:
        logger.debug("No declaration for %s in %s", handle.simple_name, handle.location)
        continue
      field = self._resolver.find_field(declaration, field_name)
      if field is not None:
        return list(field.metadata)
    return []

  def get_class_annotations(self, subject: Any) -> List[Annotation]:
    """Returns the annotations written on the class declaration of `subject`."""
    declaration = self.get_declaration_for_type(subject)
    return list(declaration.metadata) if declaration is not None else []
