"""
Tests for the Build Context.

Verifies that:
1. Construction validates locations and defaults missing flags.
2. `to_map`/`from_map` round-trip through plain values.
3. Derived directories are created on access.
4. References resolve through the dependency table, idempotently.
5. Field annotations are found along the superclass chain.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from runtime_deflect.analysis.mirrors import OBJECT_MIRROR, TypeMirror
from runtime_deflect.core.build_context import BuildContext, location_to_path
from runtime_deflect.enums import SourceKind
from runtime_deflect.errors import HierarchyError, ResolutionError, UsageError


@pytest.fixture
def model_file(dart_project: Path) -> Path:
  return dart_project / "lib" / "model.dart"


@pytest.fixture
def leaf(model_file: Path) -> TypeMirror:
  root = TypeMirror("Root", model_file)
  middle = TypeMirror("Middle", model_file, superclass=root)
  return TypeMirror("Leaf", model_file, superclass=middle)


# --- Construction and serialization ---


def test_defaults(build_context):
  assert build_context.offline is True
  assert build_context.for_tests is False
  assert build_context.source == ""
  assert build_context.source_kind is SourceKind.NORMAL
  assert not build_context.include_dev_dependencies


def test_round_trip(build_context):
  """
  Scenario: Serialize a context and rebuild it.
  Expectation: Plain values with file URIs, and an equal context.
  """
  data = build_context.to_map()

  assert list(data) == ["rootLibraryFileUri", "buildDirectoryUri", "executableUri", "source", "offline", "forTests"]
  assert data["rootLibraryFileUri"].startswith("file:///")
  assert data["offline"] is True

  restored = BuildContext.from_map(data)
  assert restored.to_map() == data
  assert restored.root_library_file_uri == build_context.root_library_file_uri
  assert restored.resolver is not build_context.resolver


def test_from_map_defaults_null_flags(build_context):
  data = {**build_context.to_map(), "offline": None, "forTests": None}

  restored = BuildContext.from_map(data)

  assert restored.offline is True
  assert restored.for_tests is False


def test_relative_location_is_rejected(tmp_path):
  with pytest.raises(ValidationError):
    BuildContext(
      root_library_file_uri="lib/application.dart",
      build_directory_uri=tmp_path / "build",
      executable_uri=tmp_path / "out",
    )


def test_context_is_frozen(build_context):
  with pytest.raises(ValidationError):
    build_context.offline = False


def test_location_to_path(tmp_path):
  assert location_to_path(tmp_path.as_uri()) == tmp_path
  assert location_to_path(str(tmp_path)) == tmp_path
  with pytest.raises(UsageError):
    location_to_path("https://example.com/a.dart")


# --- Derived locations ---


def test_directories_are_created(build_context, tmp_path, dart_project):
  assert build_context.source_application_directory == dart_project
  assert build_context.build_runtime_directory == tmp_path / "build" / "generated_runtime"
  assert build_context.build_runtime_directory.is_dir()
  assert build_context.build_packages_directory.is_dir()
  assert build_context.build_application_directory == tmp_path / "build" / "packages" / "application"
  assert build_context.build_application_directory.is_dir()


def test_target_script_file(build_context, tmp_path):
  assert build_context.target_script_file == tmp_path / "build" / "main.dart"

  test_context = BuildContext.from_map({**build_context.to_map(), "forTests": True})
  assert test_context.target_script_file == tmp_path / "build" / "test" / "main_test.dart"
  assert (tmp_path / "build" / "test").is_dir()
  assert test_context.source_kind is SourceKind.TEST
  assert test_context.include_dev_dependencies


def test_source_application_pubspec(build_context):
  assert build_context.source_application_pubspec.name == "application"


def test_resolved_packages_read_once(build_context, dart_project):
  table = build_context.resolved_packages
  (dart_project / ".packages").unlink()

  assert build_context.resolved_packages is table


# --- Resolution ---


def test_resolve_package_reference(build_context, tmp_path):
  """
  Scenario: A package reference naming a dependency.
  Expectation: The file below the dependency's lib/ directory.
  """
  resolved = build_context.resolve_location("package:dependency/src/dependency_base.dart")

  assert resolved == tmp_path / "dependency" / "lib" / "src" / "dependency_base.dart"
  assert resolved.is_file()


def test_resolve_location_is_idempotent(build_context):
  once = build_context.resolve_location("package:application/model.dart")

  assert build_context.resolve_location(once) == once
  assert build_context.resolve_location(str(once)) == once
  assert build_context.resolve_location(once.as_uri()) == once


def test_resolve_none(build_context):
  assert build_context.resolve_location(None) is None


@pytest.mark.parametrize(
  "ref, error",
  [
    ("lib/model.dart", UsageError),
    (Path("lib/model.dart"), UsageError),
    ("package:", UsageError),
    ("package:unknown/a.dart", ResolutionError),
    ("dart:core", ResolutionError),
    ("file:foo.dart", UsageError),
    ("file:lib/model.dart", UsageError),
  ],
)
def test_resolve_location_errors(build_context, ref, error):
  with pytest.raises(error):
    build_context.resolve_location(ref)


def test_get_import_directives(build_context, dart_project):
  location = dart_project / "lib" / "application.dart"

  statements = build_context.get_import_directives(location=location, also_include_original_file=True)

  assert statements == [
    "import 'package:dependency/dependency.dart';",
    f"import '{location.as_uri()}';",
  ]


# --- Declarations ---


def test_find_class(build_context):
  declaration = build_context.find_class("ConsumerSubclass", "package:application/application.dart")

  assert declaration.superclass.name == "Consumer"
  with pytest.raises(UsageError):
    build_context.find_class("ConsumerSubclass", None)


def test_declaration_for_package_type(build_context):
  consumer = TypeMirror("Consumer", "package:dependency/src/dependency_base.dart")

  declaration = build_context.get_declaration_for_type(consumer)

  assert declaration.name == "Consumer"
  assert declaration.method_names == ["message"]


def test_annotations_on_own_field(build_context, dart_project):
  consumer = TypeMirror("Consumer", "package:dependency/src/dependency_base.dart")
  subclass = TypeMirror("ConsumerSubclass", dart_project / "lib" / "application.dart", superclass=consumer)

  assert [a.source for a in build_context.get_annotations_for_field(subclass, "name")] == ["@Column(indexed: true)"]
  assert [a.name for a in build_context.get_annotations_for_field(subclass, "identifier")] == ["Serialize"]


def test_annotations_inherited_through_chain(build_context, leaf):
  """
  Scenario: A extends B extends C, only C declares `id`.
  Expectation: C's annotations are returned for A.
  """
  annotations = build_context.get_annotations_for_field(leaf, "id")

  assert [a.name for a in annotations] == ["primaryKey", "Column"]
  assert annotations[1].arguments == "unique: true, nullable: false"


def test_annotations_from_nearest_declaration(build_context, leaf):
  assert [a.name for a in build_context.get_annotations_for_field(leaf, "tags")] == ["Relate"]
  assert build_context.get_annotations_for_field(leaf, "label") == []


def test_annotations_absent_everywhere(build_context, leaf):
  assert build_context.get_annotations_for_field(leaf, "nothing") == []


def test_missing_declarations_are_skipped(build_context, model_file):
  """
  Scenario: An intermediate type whose declaration is not in its file.
  Expectation: The walk continues to its superclass.
  """
  root = TypeMirror("Root", model_file)
  ghost = TypeMirror("Ghost", model_file, superclass=root)

  assert [a.name for a in build_context.get_annotations_for_field(ghost, "id")] == ["primaryKey", "Column"]


def test_platform_ancestors_are_skipped(build_context, model_file):
  """
  Scenario: A chain passing through a type declared in a `dart:` library.
  Expectation: The platform type is skipped and the walk reaches the user class above it.
  """
  root = TypeMirror("Root", model_file)
  list_base = TypeMirror("ListBase", "dart:collection/list.dart", superclass=root)
  custom = TypeMirror("Leaf", model_file, superclass=list_base)

  assert [a.name for a in build_context.get_annotations_for_field(custom, "id")] == ["primaryKey", "Column"]
  assert build_context.get_annotations_for_field(list_base, "length") == []


def test_root_type_is_never_parsed(build_context, model_file):
  root = TypeMirror("Root", model_file, superclass=OBJECT_MIRROR)

  assert build_context.get_annotations_for_field(root, "hashCode") == []


def test_cyclic_chain_raises(build_context, model_file):
  class Handle:
    def __init__(self, name):
      self.simple_name = name
      self.location = model_file
      self.superclass = None

  a, b = Handle("Leaf"), Handle("Middle")
  a.superclass, b.superclass = b, a

  with pytest.raises(HierarchyError):
    build_context.get_annotations_for_field(a, "nothing")


def test_custom_reflector(build_context, model_file):
  """
  Scenario: Subjects that are plain names, turned into handles by a reflector.
  Expectation: Lookups go through the installed reflector.
  """
  handles = {"Root": TypeMirror("Root", model_file)}
  build_context.with_reflector(lambda subject: handles[subject] if isinstance(subject, str) else subject)

  assert [a.name for a in build_context.get_class_annotations("Root")] == []
  assert [a.name for a in build_context.get_annotations_for_field("Root", "id")] == ["primaryKey", "Column"]


def test_default_reflector_accepts_handles(tmp_path, dart_project, model_file):
  """
  Scenario: A freshly constructed context with no reflector installed.
  Expectation: Handles are used as they are.
  """
  context = BuildContext(
    root_library_file_uri=dart_project / "lib" / "application.dart",
    build_directory_uri=tmp_path / "build",
    executable_uri=tmp_path / "out" / "application.aot",
  )
  handle = TypeMirror("Root", model_file)

  assert context.reflect(handle) is handle
  assert context.get_declaration_for_type(handle).name == "Root"


def test_default_reflector_rejects_plain_values(build_context):
  with pytest.raises(UsageError):
    build_context.get_declaration_for_type("Root")
