"""Coupons app package.

Read-only access to discount coupons maintained by administrators,
eligibility validation against a price quote, and the per-contact
usage ledger.
"""
