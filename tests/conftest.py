"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- On-disk Dart project trees: an application, a dependency, and a copy of the
  runtime package as it looks before deflection.
- A build context over the application.
"""

import io
import sys
import textwrap
from pathlib import Path
from typing import Dict

import pytest
from rich.console import Console

# Add src to path so we can import 'runtime_deflect' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from runtime_deflect.core.build_context import BuildContext  # noqa: E402
from runtime_deflect.utils.console import THEME, reset_console, set_console  # noqa: E402

APPLICATION_LIBRARY = """\
import 'package:dependency/dependency.dart';

class ConsumerSubclass extends Consumer {
  @Column(indexed: true)
  String name;
}
"""

MODEL_LIBRARY = """\
import 'package:dependency/dependency.dart';

class Root {
  @primaryKey
  @Column(unique: true, nullable: false)
  int id;

  String get description => "root $id";
}

class Middle extends Root {
  @Relate(#items)
  List<String> tags;
}

class Leaf extends Middle {
  String label = "leaf";
}
"""

DEPENDENCY_BASE = """\
import 'package:runtime_2/runtime_2.dart';

class Consumer {
  @Serialize()
  String identifier;

  String get message => (RuntimeContext.current[runtimeType] as ConsumerRuntime).message;
}

abstract class ConsumerRuntime {
  String get message;
}
"""

RUNTIME_PUBSPEC = """\
name: runtime_2
description: Provides behaviors and base types for packages that can use mirrors and be AOT compiled.
version: 1.0.0

environment:
  sdk: ">=2.7.0 <3.0.0"

dependencies:
  analyzer: ^0.39.0
  path: ^1.6.0

dev_dependencies:
  test: ^1.6.0
"""

RUNTIME_LIBRARY = """\
library runtime_2;

export 'src/analyzer.dart';
export 'src/build.dart';
export 'src/compiler.dart';
export 'src/context.dart';
export 'src/generator.dart';
export 'src/mirror_context.dart';
"""

RUNTIME_CONTEXT = """\
import 'package:runtime_2/src/mirror_context.dart' as context;

abstract class RuntimeContext {
  static final RuntimeContext current = context.instance;

  Map<Type, Object> runtimes;

  Object operator [](Type type) => runtimes[type];
}
"""


def write_tree(root: Path, files: Dict[str, str]) -> Path:
  """Writes `files` (relative path -> contents) below `root`."""
  for relative, contents in files.items():
    target = root / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(textwrap.dedent(contents), encoding="utf-8")
  return root


@pytest.fixture
def runtime_package(tmp_path: Path) -> Path:
  """A pristine copy of the reflective runtime package."""
  return write_tree(
    tmp_path / "runtime_2",
    {
      "pubspec.yaml": RUNTIME_PUBSPEC,
      "lib/runtime_2.dart": RUNTIME_LIBRARY,
      "lib/src/context.dart": RUNTIME_CONTEXT,
      "lib/src/mirror_context.dart": "import 'dart:mirrors';\n",
    },
  )


@pytest.fixture
def dart_project(tmp_path: Path, runtime_package: Path) -> Path:
  """
  An application with one path dependency, already resolved.

  Layout::

      application/   (.packages, pubspec.yaml, lib/application.dart, lib/model.dart)
      dependency/    (lib/dependency.dart, lib/src/dependency_base.dart)
      runtime_2/
  """
  write_tree(
    tmp_path / "dependency",
    {
      "pubspec.yaml": "name: dependency\ndependencies:\n  runtime_2:\n    path: ../runtime_2\n",
      "lib/dependency.dart": "export 'src/dependency_base.dart';\n",
      "lib/src/dependency_base.dart": DEPENDENCY_BASE,
    },
  )
  return write_tree(
    tmp_path / "application",
    {
      "pubspec.yaml": "name: application\nversion: 0.1.0\ndependencies:\n  dependency:\n    path: ../dependency\n",
      ".packages": (
        "# Generated by pub\n"
        "application:lib/\n"
        "dependency:../dependency/lib/\n"
        f"runtime_2:{runtime_package.as_uri()}/lib/\n"
      ),
      "lib/application.dart": APPLICATION_LIBRARY,
      "lib/model.dart": MODEL_LIBRARY,
    },
  )


@pytest.fixture
def build_context(tmp_path: Path, dart_project: Path) -> BuildContext:
  return BuildContext(
    root_library_file_uri=dart_project / "lib" / "application.dart",
    build_directory_uri=tmp_path / "build",
    executable_uri=tmp_path / "out" / "application.aot",
  )


@pytest.fixture
def captured_console():
  """Redirects console output and logging into a string buffer."""
  buffer = io.StringIO()
  set_console(Console(file=buffer, width=300, theme=THEME, color_system=None))
  yield buffer
  reset_console()
