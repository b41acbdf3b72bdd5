"""LangGraph-based completion pipeline."""
