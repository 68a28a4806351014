"""znx - Bootable image slot manager.

This package manages A/B image slots on a removable or fixed storage device:
device initialization, image deployment, delta updates, rollback and pruning.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
