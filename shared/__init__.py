"""
Shared Kernel

Base domain classes, value objects, the error taxonomy and the
transaction/event plumbing used by every checkout context.
"""
