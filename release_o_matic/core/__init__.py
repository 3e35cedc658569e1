"""Release and deployment state primitives (build store, ledger, publish, rollback).

Kept free of FastAPI concerns so it can be reused by API routes, scripts, and tests.
"""
