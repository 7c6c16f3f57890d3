"""
Kasbon - Source Package

A small personal debt book: who owes what, since when, and how much is
still outstanding, kept in a Firebase Realtime Database.

DESIGN PRINCIPLES:
1. One open debt per person; new submissions merge into it
2. Validate before asking for the password, never after
3. The page shows what the store says, not what we hoped it would say
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Kasbon Team"
