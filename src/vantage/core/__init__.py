"""Core module for Vantage."""

from vantage.core.base import (
    BUCKETS,
    ChannelError,
    ChannelNotReadyError,
    ConversationTurn,
    EnrichmentError,
    Role,
    SessionBootstrapError,
    Transcript,
    VantageError,
)
from vantage.core.lexicon import CriterionHit, Lexicon, infer_criteria
from vantage.core.logging import get_logger, setup_logging
from vantage.core.parser import coerce_state, parse_json_object, parse_state

__all__ = [
    "BUCKETS",
    "ChannelError",
    "ChannelNotReadyError",
    "ConversationTurn",
    "CriterionHit",
    "EnrichmentError",
    "Lexicon",
    "Role",
    "SessionBootstrapError",
    "Transcript",
    "VantageError",
    "coerce_state",
    "get_logger",
    "infer_criteria",
    "parse_json_object",
    "parse_state",
    "setup_logging",
]
