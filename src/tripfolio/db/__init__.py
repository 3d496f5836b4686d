"""Persistence for the slot store, the image store and the repositories built on them."""
