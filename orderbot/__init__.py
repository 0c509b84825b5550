"""Order thread orchestration for the support Discord guild."""
