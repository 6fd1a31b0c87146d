"""WAFv2 web ACL destroyer (CloudFront scope)."""

from __future__ import annotations

from typing import Iterable, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from .base import GLOBAL_REGION, ServiceDestroyer

SCOPE = "CLOUDFRONT"


class WAFDestroyer(ServiceDestroyer):
    """Destroyer for CloudFront-scoped WAF web ACLs.

    Runs after distributions are gone; an ACL still associated with a
    distribution is deferred.
    """

    @property
    def service_name(self) -> str:
        return "waf"

    @property
    def resource_class(self) -> str:
        return "WAF web ACL"

    @property
    def is_global_service(self) -> bool:
        return True

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        waf = clients.client("wafv2", GLOBAL_REGION)
        resources = []
        marker = None
        while True:
            params = {"Scope": SCOPE, "Limit": 100}
            if marker:
                params["NextMarker"] = marker
            response = self._call(waf.list_web_acls, **params)
            for acl in response.get("WebACLs", []):
                resources.append(
                    self._descriptor(target, identifier=acl["Id"], name=acl["Name"], arn=acl.get("ARN"))
                )
            marker = response.get("NextMarker")
            if not marker or not response.get("WebACLs"):
                break
        return resources

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        waf = clients.client("wafv2", GLOBAL_REGION)
        response = self._call(waf.get_web_acl, Name=descriptor.name, Scope=SCOPE, Id=descriptor.identifier)
        self._call(
            waf.delete_web_acl,
            Name=descriptor.name,
            Scope=SCOPE,
            Id=descriptor.identifier,
            LockToken=response["LockToken"],
        )
        return None
