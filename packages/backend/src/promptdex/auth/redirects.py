"""Post-login redirects back to the frontend.

Learn: After a federated login the browser must land on the SPA with the
new bearer token in the query string (`?token=...`). The destination always
comes from the configured allow-list, never from the request: a client may
*name* one of the allow-listed URIs (redirect_uri on /oauth2/authorize),
but what we redirect to is the configured string, and anything not on the
list falls back to the first entry. That closes the open-redirect hole
where a crafted link would ship a fresh token to an attacker's site.
"""

from functools import lru_cache
from typing import Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import Depends
from starlette.responses import RedirectResponse

from promptdex.auth.authorization_requests import (
    AuthorizationRequest,
    AuthorizationRequestStore,
    get_authorization_request_store,
)
from promptdex.auth.principal import Principal
from promptdex.auth.tokens import TokenService, get_token_service
from promptdex.config import settings


class RedirectAllowList:
    """Ordered, immutable set of trusted frontend URIs."""

    def __init__(self, uris: Sequence[str]):
        if not uris:
            raise ValueError("At least one authorized redirect URI is required")
        self._uris = tuple(uris)

    def __contains__(self, uri: object) -> bool:
        return uri in self._uris

    @property
    def default(self) -> str:
        return self._uris[0]

    def resolve(self, requested: Optional[str]) -> str:
        """The allow-listed URI to use. Never returns anything off the list."""
        for uri in self._uris:
            if requested == uri:
                return uri
        return self.default


def with_query_params(uri: str, **params: str) -> str:
    """Append query parameters, keeping any the URI already has."""
    parts = urlsplit(uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class SuccessRedirectHandler:
    def __init__(
        self,
        tokens: TokenService,
        allow_list: RedirectAllowList,
        store: AuthorizationRequestStore,
    ):
        self.tokens = tokens
        self.allow_list = allow_list
        self.store = store

    def on_success(
        self, principal: Principal, auth_request: Optional[AuthorizationRequest]
    ) -> RedirectResponse:
        """Mint a token and send the browser to the frontend with it."""
        requested = auth_request.redirect_uri if auth_request else None
        target = self.allow_list.resolve(requested)
        response = RedirectResponse(
            with_query_params(target, token=self.tokens.issue(principal)),
            status_code=302,
        )
        self.store.remove(response)
        return response


class FailureRedirectHandler:
    def __init__(self, allow_list: RedirectAllowList, store: AuthorizationRequestStore):
        self.allow_list = allow_list
        self.store = store

    def on_failure(
        self, error_code: str, auth_request: Optional[AuthorizationRequest] = None
    ) -> RedirectResponse:
        """Send the browser to the frontend with a generic error code only."""
        requested = auth_request.redirect_uri if auth_request else None
        target = self.allow_list.resolve(requested)
        response = RedirectResponse(
            with_query_params(target, error=error_code), status_code=302
        )
        self.store.remove(response)
        return response


@lru_cache(maxsize=1)
def get_redirect_allow_list() -> RedirectAllowList:
    return RedirectAllowList(settings.authorized_redirect_uris)


def get_success_handler(
    tokens: TokenService = Depends(get_token_service),
    allow_list: RedirectAllowList = Depends(get_redirect_allow_list),
    store: AuthorizationRequestStore = Depends(get_authorization_request_store),
) -> SuccessRedirectHandler:
    return SuccessRedirectHandler(tokens, allow_list, store)


def get_failure_handler(
    allow_list: RedirectAllowList = Depends(get_redirect_allow_list),
    store: AuthorizationRequestStore = Depends(get_authorization_request_store),
) -> FailureRedirectHandler:
    return FailureRedirectHandler(allow_list, store)
