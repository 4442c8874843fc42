"""
Rules engine package.

Defines the authorization context, the check union and the evaluation
engine. Rules are plain callables keyed by string; a key with no rule
falls back to a direct permission or role grant. Evaluation is
fail-closed: a rule that raises denies only its own trace entry.

Modules of interest:
- models: Context, checks, trace entries, records and snapshots.
- engine: Resolution, single-rule evaluation and check orchestration.
"""
