"""Nudge — dependency-ordered sync requests for GitOps consumers.

Watches Source objects (GitRepository and friends) for new revisions and,
when one appears, asks every Consumer (Kustomization) that references the
Source to reconcile now.  Consumers are nudged in dependency order: a
Consumer's ``dependsOn`` entries are nudged before it.

Quick start::

    import nudge

    nudge.watch("my-cluster/")

Three modes::

    nudge.watch("my-cluster/")                     # React to revision changes
    nudge.trigger("my-cluster/", "flux-system/repo-a")  # One-shot trigger
    nudge.plan("my-cluster/", "flux-system/repo-a")     # Dry-run ordering

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0"
__all__ = [
    "NudgeConfig",
    "__version__",
    "plan",
    "trigger",
    "watch",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import nudge`` fast while providing a clean top-level API.
    """
    if name == "NudgeConfig":
        from nudge.config import NudgeConfig

        return NudgeConfig

    if name == "watch":
        from nudge.app import watch

        return watch

    if name == "trigger":
        from nudge.app import trigger

        return trigger

    if name == "plan":
        from nudge.app import plan

        return plan

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
