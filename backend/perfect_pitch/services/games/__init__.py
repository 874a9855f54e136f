"""Game domain services: matchmaking, sessions, timers and ratings.

This package contains the game core. It knows nothing about Socket.IO or
HTTP: it talks to players through channel objects exposing ``send`` and
``connected``, and to the database through a store exposing ``get_user``
and ``record_match``.
"""
