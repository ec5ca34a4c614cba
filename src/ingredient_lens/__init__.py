"""
Ingredient Lens - ingredient list framing with an offline fallback.

The package is split into a remote side (`analysis`: model invocation,
validation, owner-scoped storage and the HTTP surface) and a client side
(`client`: session handling, the remote analyzer client, the local history
cache and the submission pipeline). Shared foundations (config, logging,
paths, domain models) live at the top level.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
