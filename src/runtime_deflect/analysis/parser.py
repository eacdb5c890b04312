"""
Declaration-Level Dart Parser.

The resolver consumes parsers through the :class:`SourceParser` protocol: given
a file's text, return a :class:`~runtime_deflect.analysis.syntax.CompilationUnit`.
:class:`DartDeclarationParser` is the default implementation, built on the
tree-sitter Dart grammar:

1.  **Concrete tree**: tree-sitter parses the whole file. Any ``ERROR`` or
    missing node rejects the file with a
    :class:`~runtime_deflect.errors.DartParseError` carrying its line, so
    nothing is ever returned for a partially parsed file.
2.  **Declarations**: directives, class headers (modifiers, type parameters,
    ``extends``/``with``/``implements``, mixin applications), annotations and
    field declarations are mapped onto the syntax tree.
3.  **Members**: methods, constructors, accessors and operators are reduced to
    their names; their bodies are never visited.

Spans are byte offsets into the UTF-8 encoded file.
"""

import logging
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Protocol

from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_language

from runtime_deflect.analysis.syntax import (
  Annotation,
  ClassDeclaration,
  CompilationUnit,
  FieldDeclaration,
  SourceSpan,
  TypeName,
  VariableDeclaration,
)
from runtime_deflect.errors import DartParseError

logger = logging.getLogger(__name__)

LANGUAGE_NAME = "dart"

_DIRECTIVES = {"library_import", "library_export", "part_directive"}
_ANNOTATIONS = {"annotation", "marker_annotation"}
_COMMENTS = {"comment", "documentation_comment"}
_PUNCTUATION = {"{", "}", ";"}
_VARIABLE_LISTS = {"initialized_identifier_list", "static_final_declaration_list"}
_CLASS_MODIFIERS = {"abstract", "base", "final", "interface", "sealed", "mixin"}
_FIELD_MODIFIERS = {"static", "final", "const", "late", "var", "covariant", "external", "abstract"}

_IDENTIFIER = r"[A-Za-z_$][A-Za-z0-9_$]*"
_TYPE_PATTERN = re.compile(rf"^(?:({_IDENTIFIER})\.)?({_IDENTIFIER})\s*(?:<(.*)>)?\??$", re.DOTALL)
_CLOSING = {"<": ">", "(": ")", "[": "]", "{": "}"}


class SourceParser(Protocol):
  """Turns file text into a declaration-level syntax tree."""

  def parse(self, text: str, path: Optional[Path] = None) -> CompilationUnit: ...


def _child(node: Optional[Node], *types: str) -> Optional[Node]:
  if node is None:
    return None
  for child in node.children:
    if child.type in types:
      return child
  return None


def _find(node: Node, predicate: Callable[[Node], bool]) -> Optional[Node]:
  """Depth-first search below `node`."""
  for child in node.children:
    if predicate(child):
      return child
    found = _find(child, predicate)
    if found is not None:
      return found
  return None


def _first_error(node: Node) -> Node:
  for child in node.children:
    if child.type == "ERROR" or child.is_missing:
      return child
    if child.has_error:
      return _first_error(child)
  return node


def _strip_keyword(text: str, keyword: str) -> str:
  text = text.strip()
  if text.startswith(keyword):
    return text[len(keyword) :].strip()
  return text


def _split_top_level(text: str) -> List[str]:
  """Splits `text` on commas outside of brackets."""
  parts = []
  expected: List[str] = []
  current = ""
  for char in text:
    if char in _CLOSING:
      expected.append(_CLOSING[char])
    elif expected and char == expected[-1]:
      expected.pop()
    elif char == "," and not expected:
      parts.append(current.strip())
      current = ""
      continue
    current += char
  if current.strip():
    parts.append(current.strip())
  return parts


def _unquote(literal: str) -> str:
  body = literal[1:] if literal.startswith("r") else literal
  quote = 3 if body[:3] in ("'''", '"""') else 1
  return body[quote:-quote]


def type_name(text: str) -> TypeName:
  """
  Builds a :class:`TypeName` from the source text of a type.

  Simple, prefixed and generic names are decomposed. Anything else (function
  types, records) is kept whole in ``name``.

  Args:
      text: The type as written, e.g. ``Map<String, int>`` or ``core.Object?``.

  Returns:
      TypeName: The decomposed type reference.
  """
  text = " ".join(text.split())
  match = _TYPE_PATTERN.match(text)
  if match is None or match.group(2) == "Function":
    return TypeName(name=text)
  prefix, name, arguments = match.groups()
  return TypeName(name=name, prefix=prefix, type_arguments=arguments.strip() if arguments is not None else None)


class _TreeReader:
  """Maps one tree-sitter tree onto the declaration syntax tree."""

  def __init__(self, source: bytes, path: Optional[Path]):
    self.source = source
    self.path = path

  def text(self, node: Node) -> str:
    return self.source[node.start_byte : node.end_byte].decode("utf-8")

  def text_between(self, first: Node, last: Node, stop: Optional[Node] = None) -> str:
    end = stop.start_byte if stop is not None else last.end_byte
    return self.source[first.start_byte : end].decode("utf-8")

  def span(self, node: Node) -> SourceSpan:
    return SourceSpan(node.start_byte, node.end_byte, node.start_point[0] + 1)

  def check(self, root: Node) -> None:
    if not root.has_error:
      return
    node = _first_error(root)
    line = node.start_point[0] + 1
    if node.is_missing:
      raise DartParseError(f"Missing '{node.type}'", self.path, line)
    snippet = self.text(node).strip().splitlines()
    found = snippet[0][:40] if snippet else "end of file"
    raise DartParseError(f"Syntax error near '{found}'", self.path, line)

  # --- Compilation unit ---

  def unit(self, root: Node) -> CompilationUnit:
    unit = CompilationUnit(path=self.path)
    metadata: List[Annotation] = []
    for child in root.children:
      if child.type in _COMMENTS:
        continue
      if child.type in _ANNOTATIONS:
        metadata.append(self.annotation(child))
        continue
      if child.type in _DIRECTIVES or child.type == "import_or_export":
        uri = self.directive_uri(child)
        if uri is not None:
          unit.directives.append(uri)
      elif child.type == "class_definition":
        unit.classes.append(self.class_declaration(child, metadata))
      metadata = []
    return unit

  def directive_uri(self, node: Node) -> Optional[str]:
    uri = _find(node, lambda n: n.type == "uri") or _find(node, lambda n: n.type == "string_literal")
    if uri is None:
      return None
    return _unquote(self.text(uri).strip())

  # --- Annotations ---

  def annotations(self, nodes: Iterable[Node]) -> List[Annotation]:
    return [self.annotation(n) for n in nodes if n.type in _ANNOTATIONS]

  def annotation(self, node: Node) -> Annotation:
    source = self.text(node)
    head, paren, rest = source[1:].partition("(")
    head = re.sub(r"<.*>", "", head).strip()
    parts = [part.strip() for part in head.split(".")]
    arguments = rest[: rest.rfind(")")].strip() if paren else None
    return Annotation(
      name=parts[-1],
      prefix=".".join(parts[:-1]) or None,
      arguments=arguments,
      source=source,
      span=self.span(node),
    )

  # --- Classes ---

  def type_list(self, node: Optional[Node], keyword: str) -> List[TypeName]:
    if node is None:
      return []
    return [type_name(t) for t in _split_top_level(_strip_keyword(self.text(node), keyword))]

  def class_declaration(self, node: Node, metadata: List[Annotation]) -> ClassDeclaration:
    header = _child(node, "mixin_application_class") or node
    metadata = metadata + self.annotations(node.children)

    modifiers = []
    for child in node.children:
      text = self.text(child)
      if text == "class" or child.type == "mixin_application_class":
        break
      if text in _CLASS_MODIFIERS:
        modifiers.append(text)

    name = header.child_by_field_name("name") or _child(header, "identifier")
    if name is None:
      raise DartParseError("Expected class name", self.path, header.start_point[0] + 1)

    parameters = _child(header, "type_parameters")
    declaration = ClassDeclaration(
      name=self.text(name),
      modifiers=modifiers,
      type_parameters=self.text(parameters)[1:-1].strip() if parameters is not None else None,
      metadata=metadata,
      path=self.path,
    )

    if header is not node:
      application = _child(header, "mixin_application")
      mixins = _child(application, "mixins")
      if application is not None:
        declaration.superclass = type_name(self.text_between(application, application, stop=mixins))
      declaration.mixins = self.type_list(mixins, "with")
      declaration.interfaces = self.type_list(_child(application, "interfaces"), "implements")
    else:
      superclass = _child(node, "superclass")
      mixins = _child(superclass, "mixins") or _child(node, "mixins")
      if superclass is not None:
        inner = mixins if mixins is not None and mixins.parent == superclass else None
        extends = self.text_between(superclass, superclass, stop=inner).strip()
        if extends.startswith("extends"):
          declaration.superclass = type_name(_strip_keyword(extends, "extends"))
      declaration.mixins = self.type_list(mixins, "with")
      declaration.interfaces = self.type_list(_child(node, "interfaces"), "implements")
      body = _child(node, "class_body")
      if body is not None:
        self.class_body(body, declaration)

    start = metadata[0].span if metadata else self.span(node)
    declaration.span = SourceSpan(start.offset, node.end_byte, start.line)
    return declaration

  # --- Members ---

  def class_body(self, body: Node, declaration: ClassDeclaration) -> None:
    pending: List[Annotation] = []
    for child in body.children:
      if child.type in _COMMENTS or child.type in _PUNCTUATION or child.type == "function_body":
        continue
      if child.type in _ANNOTATIONS:
        pending.append(self.annotation(child))
        continue
      if child.type == "declaration" and _child(child, *_VARIABLE_LISTS) is not None:
        declaration.fields.append(self.field(child, pending))
      else:
        name = self.member_name(child)
        if name is not None:
          declaration.method_names.append(name)
      pending = []

  def member_name(self, node: Node) -> Optional[str]:
    """The name of a method, constructor, accessor or operator member."""

    def is_signature(n: Node) -> bool:
      return n.type.endswith("_signature") and n.type != "method_signature"

    signature = node if is_signature(node) else _find(node, is_signature)
    if signature is None:
      return None
    if signature.type == "operator_signature":
      return "operator"
    name = None
    for child in signature.children:
      if "parameter" in child.type:
        break
      if child.type == "identifier":
        name = self.text(child)
    return name

  def field(self, node: Node, metadata: List[Annotation]) -> FieldDeclaration:
    variables_node = _child(node, *_VARIABLE_LISTS)
    metadata = list(metadata)
    modifiers = []
    type_nodes: List[Node] = []
    for child in node.children:
      if child.start_byte >= variables_node.start_byte:
        break
      if child.type in _COMMENTS:
        continue
      if child.type in _ANNOTATIONS:
        metadata.append(self.annotation(child))
        continue
      text = self.text(child)
      if not type_nodes and text in _FIELD_MODIFIERS:
        modifiers.append(text)
      else:
        type_nodes.append(child)

    field_type = type_name(self.text_between(type_nodes[0], type_nodes[-1])) if type_nodes else None
    variables = [self.variable(item) for item in variables_node.named_children if item.type not in _COMMENTS]

    start = metadata[0].span if metadata else self.span(node)
    return FieldDeclaration(
      metadata=metadata,
      modifiers=modifiers,
      type=field_type,
      variables=variables,
      span=SourceSpan(start.offset, node.end_byte, start.line),
    )

  def variable(self, node: Node) -> VariableDeclaration:
    if node.type == "identifier":
      return VariableDeclaration(name=self.text(node), span=self.span(node))
    name = node.child_by_field_name("name") or _child(node, "identifier")
    initializer = None
    children = list(node.children)
    for index, child in enumerate(children):
      if child.type == "=" and index + 1 < len(children):
        initializer = self.text_between(children[index + 1], children[-1]).strip()
        break
    return VariableDeclaration(name=self.text(name), initializer=initializer, span=self.span(node))


class DartDeclarationParser:
  """
  Default :class:`SourceParser` for Dart source files.
  """

  def __init__(self) -> None:
    self._parser = Parser(get_language(LANGUAGE_NAME))

  def parse(self, text: str, path: Optional[Path] = None) -> CompilationUnit:
    """
    Parses a file into a declaration-level compilation unit.

    Args:
        text: The file contents.
        path: The file location, recorded on the unit and in errors.

    Returns:
        CompilationUnit: Directives and class declarations of the file.

    Raises:
        DartParseError: If the text is malformed.
    """
    source = text.encode("utf-8")
    tree = self._parser.parse(source)
    reader = _TreeReader(source, path)
    reader.check(tree.root_node)
    unit = reader.unit(tree.root_node)
    logger.debug("Parsed %d classes from %s", len(unit.classes), path or "<source>")
    return unit


def parse_source(text: str, path: Optional[Path] = None) -> CompilationUnit:
  """Convenience wrapper around :class:`DartDeclarationParser`."""
  return DartDeclarationParser().parse(text, path)
