"""Pricing app package.

Turns a cart of selected services plus stay dates into an itemized,
deterministic price quote. The engine is pure: no database access and
no network calls. Nightly room prices are supplied by the caller.
"""
