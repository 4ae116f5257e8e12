"""Plot cache — in-memory LRU, two-tier PlotDataCache, and area warming."""
