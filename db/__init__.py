"""
Database package: ORM models, engine/session helpers and the payment intent store.
"""
