"""Live session domain services: lifecycle, answers, progression, scores.

Routes and CLI commands import from here; everything in this package works
against the shared store only, so any number of request handlers can serve
the same session without in-process coordination. The one piece of shared
mutable state, a session's current question index, only moves through a
conditional update.
"""
