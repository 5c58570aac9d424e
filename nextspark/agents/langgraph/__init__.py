"""LangGraph chat orchestration: router, per-entity handlers and combiner."""
__all__ = ["state", "router", "handlers", "combiner", "orchestrator"]
