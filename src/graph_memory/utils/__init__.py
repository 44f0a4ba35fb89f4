"""Pure helpers: gating, scoring, rank fusion, deduplication, contradiction heuristics."""
