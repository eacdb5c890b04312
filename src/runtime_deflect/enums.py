"""
Enumerations for runtime-deflect.

Categorizations shared by the import extractor and the build context.
"""

from enum import Enum


class ImportKind(str, Enum):
  """
  Classification of an import directive by the form of its URI.
  """

  PACKAGE = "package"  # package:name/path.dart
  ABSOLUTE = "absolute"  # dart:io, file:///x.dart, /x.dart
  RELATIVE = "relative"  # src/x.dart, ../x.dart


class SourceKind(str, Enum):
  """
  The flavour of executable being built.
  """

  NORMAL = "normal"
  TEST = "test"
