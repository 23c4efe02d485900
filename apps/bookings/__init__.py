"""Bookings app package.

This app owns the booking lifecycle: it turns a quoted cart into a pending
reservation, applies verified payment outcomes, handles cancellation and
check-in/check-out, and expires bookings that are never paid. Every state
change runs under a row lock with a version check so duplicate gateway
callbacks cannot double-apply.
"""
