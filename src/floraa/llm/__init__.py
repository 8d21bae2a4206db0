"""LLM service: prompt building, model dispatch and response parsing."""
