"""Scoped read access to universities, courses, modules, files and students."""
