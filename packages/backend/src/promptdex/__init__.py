"""PromptDex identity core.

Authentication for the PromptDex API: local password accounts, Google and
GitHub sign-in, stateless bearer tokens, and the per-request security gate
that hands a resolved principal to the business routes.
"""

__version__ = "0.1.0"
