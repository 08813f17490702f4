"""
Restriction model and evaluator.

Modules of interest:
- models: Role set, restriction settings, requester, decision, API models.
- evaluator: Two-pass allow/exclude evaluation.
"""
