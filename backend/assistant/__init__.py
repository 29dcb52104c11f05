"""
In-app AI assistant for a freelance business-management application.

Turns a natural-language message plus the current screen scope into a
sequence of validated, permission-gated tool calls against the business
domain, and returns the model's answer with the tool outcomes.
"""
