"""
Package Deflection.

Deflection turns a replicated copy of a package that depends on the reflective
context into a package that depends on generated code instead. Three steps
run, in order, on the copy:

1.  **Export surface**: the library file is overwritten with a fixed, reduced
    list of exports. Build-only modules (compiler, generators) are dropped.
2.  **Context rewrite**: the import of the reflective context implementation is
    replaced by an import of the generated package.
3.  **Manifest rewrite**: the generated package is added as a path dependency
    in the manifest.

Every step is idempotent, so deflecting an already deflected copy changes
nothing. A step that cannot find what it rewrites raises
:class:`~runtime_deflect.errors.TransformationError`; the copy is then unusable
and must be discarded, never the original package.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, Field

from runtime_deflect.config import DeflectionPlan
from runtime_deflect.errors import TransformationError

logger = logging.getLogger(__name__)


class DeflectionReport(BaseModel):
  """
  Which deflection steps changed the package copy.

  A False flag means the step found its target already in the deflected state.
  """

  package_dir: Path = Field(..., description="The deflected package copy.")
  library_rewritten: bool = Field(False, description="The export file contents changed.")
  context_rewritten: bool = Field(False, description="The reflective import was replaced.")
  manifest_rewritten: bool = Field(False, description="The generated dependency was added.")

  @property
  def changed(self) -> bool:
    return self.library_rewritten or self.context_rewritten or self.manifest_rewritten


class PackageDeflector:
  """
  Rewrites a package copy in place according to a :class:`DeflectionPlan`.
  """

  def __init__(self, plan: Optional[DeflectionPlan] = None):
    self.plan = plan or DeflectionPlan()

  def deflect(self, destination: Path) -> DeflectionReport:
    """
    Runs all deflection steps on a package copy.

    Args:
        destination: Root directory of the replicated package.

    Returns:
        DeflectionReport: The steps that modified the copy.

    Raises:
        TransformationError: If the context import or the manifest's
            dependencies section is missing.
    """
    destination = Path(destination)
    if not destination.is_dir():
      raise TransformationError("Package copy does not exist", destination)

    report = DeflectionReport(package_dir=destination)
    report.library_rewritten = self.rewrite_library(destination)
    report.context_rewritten = self.rewrite_context(destination)
    report.manifest_rewritten = self.rewrite_manifest(destination)
    logger.debug("Deflected %s: %s", destination, report)
    return report

  def rewrite_library(self, destination: Path) -> bool:
    """
    Overwrites the library file with the reduced export surface.

    Returns:
        bool: True if the file contents changed.
    """
    library_file = destination / self.plan.library_file
    contents = self.plan.render_library()
    if library_file.is_file() and library_file.read_text(encoding="utf-8") == contents:
      return False
    library_file.parent.mkdir(parents=True, exist_ok=True)
    library_file.write_text(contents, encoding="utf-8")
    return True

  def rewrite_context(self, destination: Path) -> bool:
    """
    Replaces the first reflective context import with the generated import.

    Returns:
        bool: True if the file was rewritten, False if already deflected.

    Raises:
        TransformationError: If neither import is present, or the file is missing.
    """
    context_file = destination / self.plan.context_file
    if not context_file.is_file():
      raise TransformationError("Context module does not exist", context_file)

    text = context_file.read_text(encoding="utf-8")
    if self.plan.reflective_import in text:
      context_file.write_text(
        text.replace(self.plan.reflective_import, self.plan.generated_import, 1), encoding="utf-8"
      )
      return True
    if self.plan.generated_import in text:
      return False
    raise TransformationError(
      f"Expected import not found: {self.plan.reflective_import}",
      context_file,
    )

  def rewrite_manifest(self, destination: Path) -> bool:
    """
    Adds the generated package as the first entry of ``dependencies``.

    The entry is spliced into the manifest text, so comments, key order and
    scalars such as ``version: 0.10`` are kept exactly as written. A stale
    entry for the generated package is removed first. Only a flow-style
    ``dependencies`` mapping forces a full re-serialization.

    Returns:
        bool: True if the entry was added or corrected.

    Raises:
        TransformationError: If the manifest or its dependencies section is missing.
    """
    manifest_file = destination / self.plan.manifest_file
    if not manifest_file.is_file():
      raise TransformationError("Package manifest does not exist", manifest_file)

    text = manifest_file.read_text(encoding="utf-8")
    try:
      data = yaml.safe_load(text)
      document = yaml.compose(text)
    except yaml.YAMLError as e:
      raise TransformationError(f"Package manifest is not valid YAML: {e}", manifest_file) from e

    if not isinstance(data, dict) or "dependencies" not in data:
      raise TransformationError("Package manifest has no 'dependencies' section", manifest_file)

    dependencies = data["dependencies"] or {}
    if not isinstance(dependencies, dict):
      raise TransformationError("'dependencies' is not a mapping", manifest_file)

    entry = {"path": self.plan.generated_package_path}
    if dependencies.get(self.plan.generated_package) == entry:
      return False

    key_node, value_node = _find_key(document, "dependencies")
    if isinstance(value_node, yaml.MappingNode) and value_node.flow_style:
      logger.debug("Flow-style dependencies in %s, re-serializing the manifest", manifest_file)
      rewritten: Dict[str, Any] = {self.plan.generated_package: entry}
      rewritten.update((k, v) for k, v in dependencies.items() if k != self.plan.generated_package)
      data["dependencies"] = rewritten
      manifest_file.write_text(yaml.safe_dump(data, sort_keys=False, default_flow_style=False), encoding="utf-8")
      return True

    manifest_file.write_text(self._splice_entry(text, key_node, value_node, entry), encoding="utf-8")
    return True

  def _splice_entry(self, text: str, key_node: yaml.Node, value_node: yaml.Node, entry: Dict[str, str]) -> str:
    lines = text.splitlines(keepends=True)
    key_line = key_node.start_mark.line
    if not lines[key_line].endswith("\n"):
      lines[key_line] += "\n"

    if isinstance(value_node, yaml.MappingNode) and value_node.value:
      indent = value_node.value[0][0].start_mark.column
      for item_key, _ in value_node.value:
        if item_key.value == self.plan.generated_package:
          start = item_key.start_mark.line
          end = start + 1
          while end < len(lines) and lines[end].strip() and _indentation(lines[end]) > indent:
            end += 1
          del lines[start:end]
          break
    else:
      # `dependencies:` with no entries, or an explicit null
      indent = key_node.start_mark.column + 2
      lines[key_line] = " " * key_node.start_mark.column + "dependencies:\n"

    rendered = yaml.safe_dump({self.plan.generated_package: entry}, sort_keys=False, default_flow_style=False)
    block = [" " * indent + line + "\n" for line in rendered.splitlines()]
    lines[key_line + 1 : key_line + 1] = block
    return "".join(lines)


def _indentation(line: str) -> int:
  return len(line) - len(line.lstrip(" "))


def _find_key(document: yaml.Node, name: str) -> Tuple[yaml.Node, yaml.Node]:
  for key_node, value_node in document.value:
    if isinstance(key_node, yaml.ScalarNode) and key_node.value == name:
      return key_node, value_node
  raise KeyError(name)
