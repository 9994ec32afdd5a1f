"""
Pipeline components for note analysis: the provider chain, the note state
machine and the worker that ties them to the queue and the note store.
"""

__all__ = ["chain", "state", "worker"]
