"""Game domain services: lifecycle, scoring and winner evaluation.

This package contains the domain logic imported by HTTP routes and socket
handlers, keeping transport concerns separated from the scoring rules.
Every function takes the ``Repository`` it works through as its first
argument.
"""
