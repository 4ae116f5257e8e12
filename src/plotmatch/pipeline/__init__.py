"""Search pipeline — parallel source queries, consolidation, and request orchestration."""
