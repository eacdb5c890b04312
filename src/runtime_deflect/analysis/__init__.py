"""
Static Analysis Package.

Declaration-level parsing and lookup for Dart sources.

Modules:
    - ``syntax``: Syntax tree node types (classes, fields, annotations).
    - ``parser``: Tokenizer and declaration parser.
    - ``resolver``: Cached class and field lookup per file.
    - ``mirrors``: Type handle capability and ancestor chains.
"""
