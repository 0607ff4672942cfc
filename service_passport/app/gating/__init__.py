"""
Score gating package.

Decides whether a forum user may create an account, reply, or start a
topic based on their Gitcoin Passport score.

Modules of interest:
- models: Actions, scopes, requirements, score records and API models.
- requirements: Upsert-only requirement store keyed by (scope, action).
- bypass: Grace period during which gating is not enforced.
- engine: Decisions, score refresh and login/sign-up hooks.
- guardian: Wrapper that layers gating over the host's base permissions.
"""
