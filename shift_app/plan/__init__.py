"""Plan data model, step transitions and decomposition policy."""
