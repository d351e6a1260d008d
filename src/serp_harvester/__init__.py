"""Challenge-aware search-results email harvester."""
