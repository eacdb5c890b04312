"""
Deflection Configuration.

The :class:`DeflectionPlan` holds every constant the package deflector needs:
which library file to rewrite, the reduced export surface, the reflective
import to replace and the generated package to depend on instead. Defaults
describe the runtime package itself; any of them can be overridden from the
``[tool.runtime_deflect]`` table of the nearest ``pyproject.toml`` or by
explicit keyword arguments.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

if sys.version_info >= (3, 11):
  import tomllib
else:
  import tomli as tomllib

DEFAULT_EXPORTS = [
  "src/analyzer.dart",
  "src/context.dart",
  "src/exceptions.dart",
  "src/project_agent.dart",
]


class DeflectionPlan(BaseModel):
  """
  What the deflector rewrites inside a replicated package.
  """

  library_name: str = Field("runtime_2", description="Name used in the rewritten 'library' directive.")
  library_file: str = Field("lib/runtime_2.dart", description="Export file, relative to the package root.")
  exports: List[str] = Field(
    default_factory=lambda: list(DEFAULT_EXPORTS),
    description="Modules the deflected library re-exports, relative to lib/.",
  )
  context_file: str = Field("lib/src/context.dart", description="Module whose reflective import is replaced.")
  reflective_import: str = Field(
    "import 'package:runtime_2/src/mirror_context.dart' as context;",
    description="The import statement that pulls in the reflective implementation.",
  )
  generated_import: str = Field(
    "import 'package:generated_runtime/generated_runtime.dart' as context;",
    description="The replacement import of the generated implementation.",
  )
  generated_package: str = Field("generated_runtime", description="Name of the generated package.")
  generated_package_path: str = Field(
    "../../generated_runtime/",
    description="Path dependency to the generated package, relative to the deflected package.",
  )
  manifest_file: str = Field("pubspec.yaml", description="Package manifest, relative to the package root.")

  @field_validator("exports")
  @classmethod
  def validate_exports(cls, v: List[str]) -> List[str]:
    """
    Rejects an empty export surface.

    Args:
        v (List[str]): The configured exports.

    Returns:
        List[str]: The exports, unchanged.

    Raises:
        ValueError: If no modules are exported.
    """
    if not v:
      raise ValueError("A deflected library must export at least one module.")
    return v

  @property
  def rewritten_files(self) -> List[str]:
    """Files deflection may write, relative to the package root."""
    return [self.library_file, self.context_file, self.manifest_file]

  def render_library(self) -> str:
    """
    Renders the contents of the reduced library file.

    Returns:
        str: A ``library`` directive followed by one export per module.
    """
    lines = ["", f"library {self.library_name};", ""]
    lines.extend(f"export '{module}';" for module in self.exports)
    lines.append("")
    return "\n".join(lines) + "\n"

  @classmethod
  def load(cls, search_path: Optional[Path] = None, **overrides: Any) -> "DeflectionPlan":
    """
    Loads the plan from ``pyproject.toml`` and applies keyword overrides.

    Args:
        search_path (Optional[Path]): Directory to start searching for TOML config.
        **overrides: Field values taking precedence over the file.

    Returns:
        DeflectionPlan: The resolved plan.
    """
    toml_config, _ = _load_toml_settings(search_path or Path.cwd())
    known = {k: v for k, v in toml_config.items() if k in cls.model_fields}
    explicit = {k: v for k, v in overrides.items() if v is not None}
    return cls(**{**known, **explicit})


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Searches `start_path` and its parents for ``pyproject.toml``.

  Args:
      start_path (Path): Directory to start search from.

  Returns:
      Tuple[Dict, Optional[Path]]: The ``[tool.runtime_deflect]`` table and
      the directory it was found in.
  """
  current = start_path.resolve()

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.is_file():
      with open(toml_path, "rb") as f:
        data = tomllib.load(f)
      return data.get("tool", {}).get("runtime_deflect", {}), parent

  return {}, None
