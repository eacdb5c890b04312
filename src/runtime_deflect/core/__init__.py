"""
Core Package.

Contains the build-time transformation pipeline:
- Build Context (locations, dependency table, declaration bridge)
- Import directive extraction
- Package deflection and replication
"""
