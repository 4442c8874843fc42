"""
Core application package for permissions-gate.

- app.rules: Rule model, resolution and evaluation engine.
- app.devtools: Observable evaluation recorder and override merge.
- app.provider: Evaluation surface for UI glue (gates, hooks, panels).

Guidelines:
- Decisions are advisory; never use them as the sole enforcement point.
- Keep rule evaluation non-throwing and observable (trace + logs).
"""
