"""
LLM completion providers used by the chat gateway.
"""
