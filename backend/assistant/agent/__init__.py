"""
Agent plumbing: model calls, prompts, supervision, tracing and response assembly
"""
