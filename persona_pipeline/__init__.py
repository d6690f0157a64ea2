"""
persona_pipeline — visitor behavior tracking and persona classification service.

Stages:
  tracking/  — ingest event batches, resolve visitor identity, live aggregates
  rollup/    — daily recomputation from raw history, behavior vector, retention
  persona/   — throttled classification and cached persona label updates
"""
