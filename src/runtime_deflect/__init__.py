"""
runtime-deflect Package.

Build-time tooling that prepares a Dart application relying on runtime
reflection for ahead-of-time compilation. It resolves declarations for live
types, normalizes import directives, and deflects dependency packages so they
depend on generated, reflection-free code.

Usage
-----

.. code-block:: python

    from runtime_deflect import BuildContext, PackageDeflector, TypeMirror

    ctx = BuildContext(
      root_library_file_uri="/app/lib/application.dart",
      build_directory_uri="/tmp/build",
      executable_uri="/tmp/app.aot",
    )
    mirror = TypeMirror("User", "package:application/model/user.dart")
    annotations = ctx.get_annotations_for_field(mirror, "email")

    PackageDeflector().deflect(ctx.build_packages_directory / "runtime_2")
"""

from runtime_deflect.analysis.mirrors import OBJECT_MIRROR, TypeHandle, TypeMirror
from runtime_deflect.analysis.parser import DartDeclarationParser, SourceParser, parse_source
from runtime_deflect.analysis.resolver import DeclarationResolver
from runtime_deflect.config import DeflectionPlan
from runtime_deflect.core.build_context import BuildContext
from runtime_deflect.core.deflector import DeflectionReport, PackageDeflector
from runtime_deflect.core.imports import ImportDirective, ImportDirectiveExtractor
from runtime_deflect.core.replicator import PackageReplicator
from runtime_deflect.errors import (
  DartParseError,
  DeflectError,
  HierarchyError,
  ResolutionError,
  TransformationError,
  UsageError,
)

__version__ = "0.1.0"

__all__ = [
  "OBJECT_MIRROR",
  "BuildContext",
  "DartDeclarationParser",
  "DartParseError",
  "DeclarationResolver",
  "DeflectError",
  "DeflectionPlan",
  "DeflectionReport",
  "HierarchyError",
  "ImportDirective",
  "ImportDirectiveExtractor",
  "PackageDeflector",
  "PackageReplicator",
  "ResolutionError",
  "SourceParser",
  "TransformationError",
  "TypeHandle",
  "TypeMirror",
  "UsageError",
  "__version__",
  "parse_source",
]
