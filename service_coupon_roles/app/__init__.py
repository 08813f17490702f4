"""
Coupon role restriction service.

Decides whether a requester may apply a coupon based on the requester's
role, or on being a guest. It provides:

- app.main: API surface for validation, admin settings and health.
- app.rules: Data model and the pure allow/exclude evaluator.
- app.roles: Role registry and role sources (site roles plus guest).
- app.persistence: Coupon metadata stores and the restriction adapter.
- app.validation: The purchase-time validation hook.
- app.admin: Nonces guarding the admin save action.

Guidelines:
- Read the role set and a coupon's settings once per validation.
- Keep evaluation pure; all I/O lives in the adapters around it.
"""
