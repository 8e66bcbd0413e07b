"""
Professor agents.

One personal tutoring agent per professor. Agents are reached by students
through agent capability tokens (chat only).
"""
