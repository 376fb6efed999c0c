"""Client-side job queue for slow, rate-limited generation services.

A submitted request becomes a work item in the in-memory store. One
admission loop promotes queued items to running while respecting both a
concurrency cap and a rolling-window rate limit, and each admitted item
runs its backend call on its own thread. Completion is written back to the
store as soon as the call settles, in whatever order that happens.
"""
