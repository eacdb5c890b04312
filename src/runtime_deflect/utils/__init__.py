"""
Utility Package.

Console and logging helpers shared by the library and the CLI.
"""
