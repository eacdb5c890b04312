"""
Declaration Syntax Tree.

Node types produced by a :class:`~runtime_deflect.analysis.parser.SourceParser`.
The tree is declaration-level only: it describes classes, their fields and the
annotations attached to both, with source spans pointing back into the file.
Statement and expression structure is not modelled.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass(frozen=True)
class SourceSpan:
  """
  A region of source text.

  Attributes:
      offset: 0-based byte offset (UTF-8) of the first character.
      end: 0-based byte offset one past the last character.
      line: 1-based line of the first character.
  """

  offset: int
  end: int
  line: int

  @property
  def length(self) -> int:
    return self.end - self.offset


@dataclass
class Annotation:
  """
  Metadata attached to a declaration, e.g. ``@Column(nullable: true)``.

  Attributes:
      name: The annotation identifier, without prefix (``Column``).
      prefix: Import prefix when written as ``@orm.Column``.
      arguments: Raw text between the parentheses, or None if not invoked.
      source: The full annotation text as written.
  """

  name: str
  prefix: Optional[str] = None
  arguments: Optional[str] = None
  source: str = ""
  span: Optional[SourceSpan] = None

  @property
  def qualified_name(self) -> str:
    return f"{self.prefix}.{self.name}" if self.prefix else self.name


@dataclass
class TypeName:
  """A named type reference such as ``Map<String, int>`` or ``core.Object``."""

  name: str
  prefix: Optional[str] = None
  type_arguments: Optional[str] = None

  def __str__(self) -> str:
    text = f"{self.prefix}.{self.name}" if self.prefix else self.name
    if self.type_arguments is not None:
      text += f"<{self.type_arguments}>"
    return text


@dataclass
class VariableDeclaration:
  """
  A single declared variable inside a field declaration.

  ``final int a = 1, b;`` declares two variables sharing one
  :class:`FieldDeclaration`, reachable through ``parent``.
  """

  name: str
  initializer: Optional[str] = None
  span: Optional[SourceSpan] = None
  parent: Optional["FieldDeclaration"] = field(default=None, repr=False, compare=False)


@dataclass
class FieldDeclaration:
  """
  A field member of a class, with every variable it declares.

  Attributes:
      metadata: Annotations written before the declaration.
      modifiers: Keywords such as ``static``, ``final``, ``late``.
      type: The declared type, or None for ``var``/inferred declarations.
      variables: The declared variables, in source order.
  """

  metadata: List[Annotation] = field(default_factory=list)
  modifiers: List[str] = field(default_factory=list)
  type: Optional[TypeName] = None
  variables: List[VariableDeclaration] = field(default_factory=list)
  span: Optional[SourceSpan] = None

  def __post_init__(self) -> None:
    for variable in self.variables:
      variable.parent = self

  @property
  def is_static(self) -> bool:
    return "static" in self.modifiers

  @property
  def names(self) -> List[str]:
    return [v.name for v in self.variables]


@dataclass
class ClassDeclaration:
  """
  A class declaration and its member fields.

  Methods, constructors and accessors are not modelled beyond their names,
  which are kept in ``method_names`` for diagnostics.
  """

  name: str
  modifiers: List[str] = field(default_factory=list)
  type_parameters: Optional[str] = None
  superclass: Optional[TypeName] = None
  mixins: List[TypeName] = field(default_factory=list)
  interfaces: List[TypeName] = field(default_factory=list)
  metadata: List[Annotation] = field(default_factory=list)
  fields: List[FieldDeclaration] = field(default_factory=list)
  method_names: List[str] = field(default_factory=list)
  span: Optional[SourceSpan] = None
  path: Optional[Path] = None

  @property
  def is_abstract(self) -> bool:
    return "abstract" in self.modifiers

  def get_field(self, name: str) -> Optional[VariableDeclaration]:
    """
    Finds a field variable declared directly on this class.

    Args:
        name: The field identifier.

    Returns:
        The matching variable (its ``parent`` is the enclosing field
        declaration), or None.
    """
    for declaration in self.fields:
      for variable in declaration.variables:
        if variable.name == name:
          return variable
    return None


@dataclass
class CompilationUnit:
  """
  The parsed contents of one source file.

  Attributes:
      path: The file the unit was parsed from, if any.
      directives: URIs named by import/export/part directives, in order.
      classes: Top-level class declarations, in order.
  """

  path: Optional[Path] = None
  directives: List[str] = field(default_factory=list)
  classes: List[ClassDeclaration] = field(default_factory=list)

  def get_class(self, name: str) -> Optional[ClassDeclaration]:
    for declaration in self.classes:
      if declaration.name == name:
        return declaration
    return None
