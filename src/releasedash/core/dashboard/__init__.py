"""
Release dashboard backend.

Provides the release store, the sync engine that mirrors GitHub facts into
it, and the HTTP API the dashboard talks to.
"""
