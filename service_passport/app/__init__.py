"""
Passport gating service.

Gates forum actions behind a minimum Gitcoin Passport score. It provides:

- app.main: Admin API for requirements, score refresh, and host hooks.
- app.gating: Requirement store, bypass window, and the gating engine.
- app.adapters: Client for the Passport scorer API.
- app.cache: Score caches (in-process and Redis).
- app.persistence: PostgreSQL requirements and user score mirror.

Decisions never call the scorer API; only refreshes and sign-up checks do.
"""
