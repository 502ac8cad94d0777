"""Streaming chat completion service."""
