"""
Tests for Package Replication.

Verifies that:
1. Packages are copied into the build's packages directory and deflected there.
2. Packages without a deflector are copied unchanged.
3. A failed deflection discards the copy and leaves the original untouched.
"""

import pytest

from runtime_deflect.core.deflector import PackageDeflector
from runtime_deflect.core.replicator import PackageReplicator
from runtime_deflect.errors import ResolutionError, TransformationError


def test_replicate_and_deflect(build_context, runtime_package):
  """
  Scenario: Replicating the runtime package with a deflector.
  Expectation: The copy is deflected; the source package is not.
  """
  replicator = PackageReplicator(build_context, {"runtime_2": PackageDeflector()})

  destination = replicator.replicate("runtime_2")

  assert destination == build_context.build_packages_directory / "runtime_2"
  assert "generated_runtime" in (destination / "lib" / "src" / "context.dart").read_text(encoding="utf-8")
  assert "mirror_context" in (runtime_package / "lib" / "src" / "context.dart").read_text(encoding="utf-8")


def test_replicate_replaces_stale_copy(build_context):
  replicator = PackageReplicator(build_context)
  stale = replicator.destination_for("dependency") / "stale.txt"
  stale.parent.mkdir(parents=True)
  stale.write_text("old", encoding="utf-8")

  destination = replicator.replicate("dependency")

  assert not stale.exists()
  assert (destination / "lib" / "dependency.dart").is_file()


def test_ignored_entries_are_not_copied(build_context, dart_project):
  (dart_project / ".dart_tool").mkdir()
  (dart_project / ".dart_tool" / "cache").write_text("x", encoding="utf-8")

  destination = PackageReplicator(build_context).replicate("application")

  assert (destination / "lib" / "application.dart").is_file()
  assert not (destination / ".dart_tool").exists()
  assert not (destination / ".packages").exists()


def test_failed_deflection_discards_copy(build_context, runtime_package):
  """
  Scenario: The context module lacks the reflective import.
  Expectation: TransformationError propagates and no copy remains.
  """
  (runtime_package / "lib" / "src" / "context.dart").write_text("class RuntimeContext {}\n", encoding="utf-8")
  replicator = PackageReplicator(build_context, {"runtime_2": PackageDeflector()})

  with pytest.raises(TransformationError):
    replicator.replicate("runtime_2")

  assert not replicator.destination_for("runtime_2").exists()
  assert (runtime_package / "lib" / "src" / "context.dart").read_text(encoding="utf-8") == "class RuntimeContext {}\n"


def test_unknown_package(build_context):
  with pytest.raises(ResolutionError, match="Unknown package 'nope'"):
    PackageReplicator(build_context).replicate("nope")


def test_missing_source_directory(build_context, tmp_path):
  with pytest.raises(ResolutionError, match="does not exist"):
    PackageReplicator(build_context).replicate("ghost", source_dir=tmp_path / "ghost")


def test_replicate_all(build_context):
  replicator = PackageReplicator(build_context, {"runtime_2": PackageDeflector()})

  copies = replicator.replicate_all()

  assert list(copies) == ["application", "dependency", "runtime_2"]
  assert all(path.is_dir() for path in copies.values())
