"""Jira ticket context aggregation with Figma design export."""

from jira_context.api import FigmaApi, JiraApi
from jira_context.core.adf.decoder import decode, extract_text
from jira_context.core.adf.encoder import build_document
from jira_context.core.aggregate.traversal import AggregateResult, aggregate
from jira_context.protocols import FigmaApiProtocol, JiraApiProtocol

__all__ = [
    "AggregateResult",
    "FigmaApi",
    "FigmaApiProtocol",
    "JiraApi",
    "JiraApiProtocol",
    "aggregate",
    "build_document",
    "decode",
    "extract_text",
]
