"""LLM integration used for AI summaries.

- Prompts and outputs are never logged (they contain report data).
- Configured through environment variables only.
"""
