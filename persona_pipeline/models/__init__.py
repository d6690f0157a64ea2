"""
models/__init__.py — imports all ORM models so Alembic's env.py
sees them via Base.metadata when generating migrations.

Import order follows FK dependencies: sessions first, then their children.
"""
from persona_pipeline.models.visitor_session import VisitorSessionORM
from persona_pipeline.models.behavior_log import BehaviorLogORM
from persona_pipeline.models.aggregated_behavior import AggregatedBehaviorORM

__all__ = ["VisitorSessionORM", "BehaviorLogORM", "AggregatedBehaviorORM"]
