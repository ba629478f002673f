"""Schema validation for durable store documents."""
