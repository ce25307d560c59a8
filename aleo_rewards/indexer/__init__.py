"""Block ingestion pipeline: batch catch-up, live tail and event dispatch."""
