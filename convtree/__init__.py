"""Conversation tree reconstruction for agentic coding transcripts."""

from convtree.delegation import (
    DelegationInvocation,
    DelegationMatch,
    DelegationNode,
    expand_delegations,
    iter_delegation_invocations,
    resolve_delegation,
    resolve_delegation_match,
)
from convtree.errors import ConversationIntegrityError, ConvtreeError, MalformedLineError
from convtree.parsers.jsonl import decode_line, iter_jsonl, parse_jsonl, parse_jsonl_file
from convtree.reconstruct import (
    ReconstructedSession,
    reconstruct,
    reconstruct_text,
    reconstruct_with_sub_sessions,
)
from convtree.sidechain import SidechainIndex
from convtree.subsessions import FileSubSessionStore, SubSessionFetcher, load_missing_sub_sessions
from convtree.tree import ConversationTree

__all__ = [
    "ConversationIntegrityError",
    "ConversationTree",
    "ConvtreeError",
    "DelegationInvocation",
    "DelegationMatch",
    "DelegationNode",
    "FileSubSessionStore",
    "MalformedLineError",
    "ReconstructedSession",
    "SidechainIndex",
    "SubSessionFetcher",
    "decode_line",
    "expand_delegations",
    "iter_delegation_invocations",
    "iter_jsonl",
    "load_missing_sub_sessions",
    "parse_jsonl",
    "parse_jsonl_file",
    "reconstruct",
    "reconstruct_text",
    "reconstruct_with_sub_sessions",
    "resolve_delegation",
    "resolve_delegation_match",
]
