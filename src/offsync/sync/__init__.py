"""Background sync -- a durable queue of writes made while offline.

See :class:`MutationQueue`.
"""

from offsync.sync.queue import MutationQueue, should_enqueue

__all__ = ["MutationQueue", "should_enqueue"]
