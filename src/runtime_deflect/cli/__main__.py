"""
Main Entry Point for the runtime-deflect CLI.

Parses arguments and dispatches to the handlers in
`runtime_deflect.cli.handlers`.
"""

import argparse
from pathlib import Path
from typing import List, Optional

from runtime_deflect import __version__
from runtime_deflect.cli import handlers


def main(argv: Optional[List[str]] = None) -> int:
  """
  Main CLI entry point.

  Args:
      argv: Optional list of command line arguments (defaults to sys.argv).

  Returns:
      int: Exit code (0 for success, non-zero for failure).
  """
  parser = argparse.ArgumentParser(description="runtime-deflect: Reflection removal for AOT builds")
  parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

  subparsers = parser.add_subparsers(dest="command", required=True)

  # --- Command: DEFLECT ---
  cmd_deflect = subparsers.add_parser("deflect", help="Rewrite a package copy to use the generated runtime")
  cmd_deflect.add_argument("package_dir", type=Path, help="Package directory to deflect")
  cmd_deflect.add_argument("--copy-to", type=Path, default=None, help="Replicate the package here first")

  # --- Command: FIND-CLASS ---
  cmd_find = subparsers.add_parser("find-class", help="Show a class declaration and its fields")
  cmd_find.add_argument("name", help="Class identifier")
  cmd_find.add_argument("file", type=Path, help="Source file declaring the class")
  cmd_find.add_argument("--root", type=Path, default=None, help="Project root (default: cwd)")

  # --- Command: IMPORTS ---
  cmd_imports = subparsers.add_parser("imports", help="Print normalized import directives of a file")
  cmd_imports.add_argument("file", type=Path, help="Source file")
  cmd_imports.add_argument("--source-dir", type=Path, default=None, help="Base directory for relative imports")
  cmd_imports.add_argument("--include-original", action="store_true", help="Also import the file itself")

  # --- Command: PACKAGES ---
  cmd_packages = subparsers.add_parser("packages", help="Print the resolved dependency table")
  cmd_packages.add_argument("project_dir", type=Path, help="Resolved project directory")

  args = parser.parse_args(argv)

  if args.command == "deflect":
    return handlers.handle_deflect(args.package_dir, args.copy_to)

  elif args.command == "find-class":
    return handlers.handle_find_class(args.name, args.file, args.root)

  elif args.command == "imports":
    return handlers.handle_imports(args.file, args.source_dir, args.include_original)

  elif args.command == "packages":
    return handlers.handle_packages(args.project_dir)

  return 0
