"""tourdispatch.tools package

Developer utilities for evaluating drops and replaying edit scripts offline.

Keep this package's __init__ free of eager imports so `python -m ...` stays
side-effect free.
"""

__all__: list[str] = []
