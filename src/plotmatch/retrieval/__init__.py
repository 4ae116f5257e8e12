"""Upstream provider clients and the normalization helpers they share."""
