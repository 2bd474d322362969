"""Enrichment calls: summary, state extraction and proposal scouting."""

from vantage.enrichment.gateway import EnrichmentGateway, extract_output_text, heuristic_proposals

__all__ = ["EnrichmentGateway", "extract_output_text", "heuristic_proposals"]
