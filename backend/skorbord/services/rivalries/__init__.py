"""Rivalry identity and statistics.

A rivalry is the stable identity of an exact, order-independent set of
players within an environment. ``resolver`` maps player sets to rivalries,
``stats`` rebuilds per-player results whenever a game finalizes.
"""
