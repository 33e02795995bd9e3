"""Application layer – webhook ingestion and billing state machines."""
