"""
finevents — Financial Event Pipeline

Prepares user-authored financial events for a simulation engine and turns
the engine's per-path output into goal statistics.

Modules
-------
- accounts      : Account type resolution (canonical categories, legacy aliases)
- events        : Typed event model and canonical monthly records
- adapter       : Raw wire events -> typed events
- normalizer    : Expansion into canonical monthly events
- validation    : Structural and domain rules, immutable report
- engine        : Engine wire contract and local reference engine
- orchestrator  : Single-in-flight engine runs with error translation
- aggregator    : Percentiles, success probability, goal status
- changes       : Confirmed chat-driven edits with an allow-list
- pipeline      : End-to-end facade
"""

from .accounts import CanonicalAccountType, resolve, is_valid
from .aggregator import GoalOutcome, aggregate
from .normalizer import expand, expand_all
from .orchestrator import SimulationOrchestrator
from .pipeline import PlanPipeline
from .validation import ValidationReport, validate
from . import utils

__version__ = "0.1.0"
