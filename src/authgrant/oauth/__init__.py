"""OAuth 2.0 building blocks.

Token endpoint helpers, PKCE and the interactive redirect flow used by
the authenticators. Token stores live in :mod:`authgrant.oauth.token_store`.
"""

from authgrant.oauth.flows import GrantTypes, TokenSet, request_token
from authgrant.oauth.interactive import FlowState, InteractiveFlow, ManualLogin
from authgrant.oauth.pkce import PKCEPair, generate_code_challenge, generate_code_verifier

__all__ = [
    "FlowState",
    "GrantTypes",
    "InteractiveFlow",
    "ManualLogin",
    "PKCEPair",
    "TokenSet",
    "generate_code_challenge",
    "generate_code_verifier",
    "request_token",
]
