"""Immutable snapshots handed out by the metadata store."""
