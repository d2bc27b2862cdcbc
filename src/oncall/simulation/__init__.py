"""Simulation subsystem: world model, incident policy, reducer, session."""
from .actions import INVESTIGATION_BONUS, quick_fix_probability
from .catalog import CATALOG, CatalogError, IncidentCategory, IncidentProfile, QuickFix
from .clock import GameRules, advance_clock
from .fsm import MigrationStep, advance_operation, migration_step
from .generator import candidate_pool, generate_incident, register_incident
from .intents import INTENT_TYPES, Intent, IntentError, parse_intent
from .lifecycle import compute_uptime, migration_success_ratio, resolve_incidents
from .models import (
    ActionFeedback,
    ContainerdHealth,
    FeedbackKind,
    FlydStatus,
    FSMOperation,
    FSMType,
    GameState,
    Gauges,
    Incident,
    IncidentType,
    MigrationState,
    NetworkStatus,
    Score,
    Severity,
    Worker,
    WorkerStatus,
)
from .reducer import initial_state, reduce
from .scoring import final_rating
from .session import GameSession, PeriodicTimer, SessionConfig
from .workers import compute_dynamic_stats, make_worker, tick_worker

__all__ = [
    "ActionFeedback",
    "CATALOG",
    "CatalogError",
    "ContainerdHealth",
    "FSMOperation",
    "FSMType",
    "FeedbackKind",
    "FlydStatus",
    "GameRules",
    "GameSession",
    "GameState",
    "Gauges",
    "INTENT_TYPES",
    "INVESTIGATION_BONUS",
    "Incident",
    "IncidentCategory",
    "IncidentProfile",
    "IncidentType",
    "Intent",
    "IntentError",
    "MigrationState",
    "MigrationStep",
    "NetworkStatus",
    "PeriodicTimer",
    "QuickFix",
    "Score",
    "SessionConfig",
    "Severity",
    "Worker",
    "WorkerStatus",
    "advance_clock",
    "advance_operation",
    "candidate_pool",
    "compute_dynamic_stats",
    "compute_uptime",
    "final_rating",
    "generate_incident",
    "initial_state",
    "make_worker",
    "migration_step",
    "migration_success_ratio",
    "parse_intent",
    "quick_fix_probability",
    "reduce",
    "register_incident",
    "resolve_incidents",
    "tick_worker",
]
