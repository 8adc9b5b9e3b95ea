"""
ofbizinit - Container initialization entry point for Apache OFBiz.

Prepares a long-lived OFBiz instance before handing control to it:

- Rewrites host and URL configuration (once per persistent volume)
- Loads seed or demo data and operator-supplied data files
- Provisions the admin account with an OFBiz salted SHA-1 credential
- Runs operator hook scripts at fixed checkpoints
- Relays termination signals to OFBiz's graceful stop script
- Replaces itself with the OFBiz process

Example usage:
    from ofbizinit import Initializer, get_settings

    handoff = Initializer(get_settings()).run(["bin/ofbiz"])
    handoff.execute()
"""

__version__ = "0.1.0"
__all__ = [
    "Initializer",
    "Handoff",
    "get_settings",
    "resolve_config",
    "hash_password",
    "__version__",
]


# Lazy imports to keep `import ofbizinit` free of pydantic and OpenTelemetry
def __getattr__(name: str):
    if name in ("Initializer", "Handoff"):
        from ofbizinit import orchestrator
        return getattr(orchestrator, name)
    if name in ("get_settings", "resolve_config"):
        from ofbizinit import config
        return getattr(config, name)
    if name == "hash_password":
        from ofbizinit.credentials import hash_password
        return hash_password
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
