"""Test package marker.

Making `tests/` a package gives test modules fully-qualified names, so two
files with the same basename in different directories do not collide.
"""
