"""IAM destroyers.

IAM entities cannot be deleted while anything is still attached to them, so
each delete first strips attachments (policies, keys, group memberships,
instance profiles) and then removes the entity.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import NotFoundError
from ..matcher import ResourceMatcher
from .base import GLOBAL_REGION, ServiceDestroyer, tags_to_dict

USER = "user"
GROUP = "group"
ROLE = "role"
POLICY = "policy"
OIDC_PROVIDER = "oidc-provider"

RESOURCE_CLASSES = {
    USER: "IAM user",
    GROUP: "IAM group",
    ROLE: "IAM role",
    POLICY: "IAM policy",
    OIDC_PROVIDER: "IAM OIDC provider",
}

SERVICE_ROLE_PATH = "/aws-service-role/"
CI_ROLE_PREFIXES = ("githubactions-", "github-actions-")


class IAMDestroyer(ServiceDestroyer):
    """Destroyer for IAM users, groups, roles, local policies and OIDC providers.

    OIDC providers carry no project name (their identifier is the issuer URL),
    so they only match through ownership tags.
    """

    @property
    def service_name(self) -> str:
        return "iam"

    @property
    def resource_class(self) -> str:
        return "IAM resource"

    @property
    def is_global_service(self) -> bool:
        return True

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        iam = clients.client("iam", GLOBAL_REGION)
        resources: List[ResourceDescriptor] = []

        for user in self._paginate(iam, "list_users", "Users"):
            resources.append(self._item(target, USER, user["UserName"], arn=user.get("Arn")))
        for group in self._paginate(iam, "list_groups", "Groups"):
            resources.append(self._item(target, GROUP, group["GroupName"], arn=group.get("Arn")))
        resources.extend(self._roles(iam, target))
        for policy in self._paginate(iam, "list_policies", "Policies", Scope="Local"):
            resources.append(
                self._descriptor(
                    target,
                    identifier=policy["Arn"],
                    name=policy["PolicyName"],
                    resource_class=RESOURCE_CLASSES[POLICY],
                    kind=POLICY,
                )
            )
        resources.extend(self._oidc_providers(iam, target))
        return resources

    def _roles(self, iam: Any, target: Target) -> List[ResourceDescriptor]:
        return [
            self._item(target, ROLE, role["RoleName"], arn=role.get("Arn"))
            for role in self._paginate(iam, "list_roles", "Roles")
            if not role.get("Path", "/").startswith(SERVICE_ROLE_PATH)
        ]

    def _oidc_providers(self, iam: Any, target: Target) -> List[ResourceDescriptor]:
        providers = []
        response = self._call(iam.list_open_id_connect_providers)
        for entry in response.get("OpenIDConnectProviderList", []):
            arn = entry["Arn"]
            details = self._call(iam.get_open_id_connect_provider, OpenIDConnectProviderArn=arn)
            providers.append(
                self._descriptor(
                    target,
                    identifier=arn,
                    name="",
                    tags=tags_to_dict(details.get("Tags", [])),
                    resource_class=RESOURCE_CLASSES[OIDC_PROVIDER],
                    kind=OIDC_PROVIDER,
                    url=details.get("Url"),
                )
            )
        return providers

    def _item(self, target: Target, kind: str, name: str, **metadata: Any) -> ResourceDescriptor:
        return self._descriptor(
            target,
            identifier=name,
            name=name,
            resource_class=RESOURCE_CLASSES[kind],
            kind=kind,
            **metadata,
        )

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        iam = clients.client("iam", GLOBAL_REGION)
        kind = descriptor.metadata.get("kind")
        handlers = {
            USER: self._delete_user,
            GROUP: self._delete_group,
            ROLE: self._delete_role,
            POLICY: self._delete_policy,
            OIDC_PROVIDER: self._delete_oidc_provider,
        }
        if kind not in handlers:
            raise ValueError(f"Unknown IAM resource kind: {kind}")
        handlers[kind](iam, descriptor.identifier)
        return None

    def _delete_role(self, iam: Any, name: str) -> None:
        for policy in self._paginate(iam, "list_attached_role_policies", "AttachedPolicies", RoleName=name):
            self._call(iam.detach_role_policy, RoleName=name, PolicyArn=policy["PolicyArn"])
        for policy_name in self._paginate(iam, "list_role_policies", "PolicyNames", RoleName=name):
            self._call(iam.delete_role_policy, RoleName=name, PolicyName=policy_name)
        for profile in self._paginate(iam, "list_instance_profiles_for_role", "InstanceProfiles", RoleName=name):
            self._call(
                iam.remove_role_from_instance_profile,
                InstanceProfileName=profile["InstanceProfileName"],
                RoleName=name,
            )
        self._call(iam.delete_role, RoleName=name)

    def _delete_policy(self, iam: Any, arn: str) -> None:
        for role in self._paginate(iam, "list_entities_for_policy", "PolicyRoles", PolicyArn=arn):
            self._detach_ignoring_missing(iam.detach_role_policy, RoleName=role["RoleName"], PolicyArn=arn)
        for user in self._paginate(iam, "list_entities_for_policy", "PolicyUsers", PolicyArn=arn):
            self._detach_ignoring_missing(iam.detach_user_policy, UserName=user["UserName"], PolicyArn=arn)
        for group in self._paginate(iam, "list_entities_for_policy", "PolicyGroups", PolicyArn=arn):
            self._detach_ignoring_missing(iam.detach_group_policy, GroupName=group["GroupName"], PolicyArn=arn)

        for version in self._paginate(iam, "list_policy_versions", "Versions", PolicyArn=arn):
            if not version.get("IsDefaultVersion"):
                self._call(iam.delete_policy_version, PolicyArn=arn, VersionId=version["VersionId"])
        self._call(iam.delete_policy, PolicyArn=arn)

    def _delete_user(self, iam: Any, name: str) -> None:
        for group in self._paginate(iam, "list_groups_for_user", "Groups", UserName=name):
            self._call(iam.remove_user_from_group, GroupName=group["GroupName"], UserName=name)
        for key in self._paginate(iam, "list_access_keys", "AccessKeyMetadata", UserName=name):
            self._call(iam.delete_access_key, UserName=name, AccessKeyId=key["AccessKeyId"])
        for device in self._paginate(iam, "list_mfa_devices", "MFADevices", UserName=name):
            serial = device["SerialNumber"]
            self._call(iam.deactivate_mfa_device, UserName=name, SerialNumber=serial)
            if ":mfa/" in serial:
                self._detach_ignoring_missing(iam.delete_virtual_mfa_device, SerialNumber=serial)
        for cert in self._paginate(iam, "list_signing_certificates", "Certificates", UserName=name):
            self._call(iam.delete_signing_certificate, UserName=name, CertificateId=cert["CertificateId"])
        for key in self._paginate(iam, "list_ssh_public_keys", "SSHPublicKeys", UserName=name):
            self._call(iam.delete_ssh_public_key, UserName=name, SSHPublicKeyId=key["SSHPublicKeyId"])
        credentials = self._call(iam.list_service_specific_credentials, UserName=name)
        for cred in credentials.get("ServiceSpecificCredentials", []):
            self._call(
                iam.delete_service_specific_credential,
                UserName=name,
                ServiceSpecificCredentialId=cred["ServiceSpecificCredentialId"],
            )
        for policy in self._paginate(iam, "list_attached_user_policies", "AttachedPolicies", UserName=name):
            self._call(iam.detach_user_policy, UserName=name, PolicyArn=policy["PolicyArn"])
        for policy_name in self._paginate(iam, "list_user_policies", "PolicyNames", UserName=name):
            self._call(iam.delete_user_policy, UserName=name, PolicyName=policy_name)

        try:
            self._call(iam.delete_login_profile, UserName=name)
        except NotFoundError:
            pass  # no console password
        self._call(iam.delete_user, UserName=name)

    def _delete_group(self, iam: Any, name: str) -> None:
        response = self._call(iam.get_group, GroupName=name)
        for user in response.get("Users", []):
            self._call(iam.remove_user_from_group, GroupName=name, UserName=user["UserName"])
        for policy in self._paginate(iam, "list_attached_group_policies", "AttachedPolicies", GroupName=name):
            self._call(iam.detach_group_policy, GroupName=name, PolicyArn=policy["PolicyArn"])
        for policy_name in self._paginate(iam, "list_group_policies", "PolicyNames", GroupName=name):
            self._call(iam.delete_group_policy, GroupName=name, PolicyName=policy_name)
        self._call(iam.delete_group, GroupName=name)

    def _delete_oidc_provider(self, iam: Any, arn: str) -> None:
        self._call(iam.delete_open_id_connect_provider, OpenIDConnectProviderArn=arn)

    def _detach_ignoring_missing(self, method, **kwargs: Any) -> None:
        try:
            self._call(method, **kwargs)
        except NotFoundError as e:
            self.logger.debug(f"Already detached: {e}")


class CrossAccountRoleDestroyer(IAMDestroyer):
    """CI deployment roles in member accounts, removed first.

    Only roles with a CI role prefix that also match ownership rules are
    touched; the organization access role is always excluded by configuration.
    """

    member_only = True
    validated = False

    @property
    def service_name(self) -> str:
        return "cross_account_roles"

    @property
    def resource_class(self) -> str:
        return "cross-account IAM role"

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        iam = clients.client("iam", GLOBAL_REGION)
        return [
            role
            for role in self._roles(iam, target)
            if role.name.lower().startswith(CI_ROLE_PREFIXES)
        ]

    def select(self, descriptors: List[ResourceDescriptor], matcher: ResourceMatcher) -> List[ResourceDescriptor]:
        return [d for d in matcher.filter(descriptors) if d.name.lower().startswith(CI_ROLE_PREFIXES)]
