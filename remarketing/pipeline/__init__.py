"""
Generation pipeline.

Modules
-------
workflow    : WorkflowRunner: one generation pass over a customer set.
maintenance : Expiry sweep and retention cleanup over the recommendation store.
"""
