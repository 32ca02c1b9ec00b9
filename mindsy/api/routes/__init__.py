from . import notes, tasks

__all__ = ["notes", "tasks"]
